"""
Submission data access

SubmissionRepository is the single place that reads and writes timesheet
submissions. Routes hand it the authenticated viewer (the dict built by
app.utils.auth.get_current_user) and render whatever it returns; every rule
about who may see, create, change or delete a submission lives here.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from flask import current_app
import uuid
from sqlalchemy import func, or_
from app.errors import (
    AuthorizationError, DuplicatePeriodError, NotFoundError,
    StatusMismatchError, ValidationError
)
from app.models.contractor import Contractor
from app.models.project import Project, ProjectAssignment
from app.models.submission import Submission, Payment
from app.models.user import Profile
from app.utils.cache import RequestCoalescingCache
from app.utils.calculations import (
    calculate_total_for_storage, default_overtime_rate, normalize_pay_type,
    to_safe_number, PAY_TYPE_FIXED
)
from app.utils.helpers import create_notification, parse_date, parse_work_period
from app.utils.workflow import (
    Action, SubmissionStatus, action_to_dict, find_allowed_action,
    get_allowed_actions, map_status, status_label, stored_values_for,
    to_stored_status
)

logger = logging.getLogger(__name__)

CACHE_PREFIX = 'submissions:'
DEFAULT_PROJECT_NAME = 'General Work'
RESUBMITTABLE = (SubmissionStatus.REJECTED_CONTRACTOR, SubmissionStatus.PENDING_MANAGER)
EDITABLE_FIELDS = (
    'work_period', 'hours_submitted', 'overtime_hours', 'overtime_description',
    'description', 'excluded_dates', 'project_id'
)


class SubmissionRepository:

    def __init__(self, db, cache=None):
        self.db = db
        self.cache = cache if cache is not None else RequestCoalescingCache()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_submissions(self, viewer, status=None, search=None, limit=None):
        """UI-shaped submissions visible to the viewer, newest first"""
        try:
            status = SubmissionStatus(status.strip().upper()) if status else None
        except ValueError:
            raise ValidationError(f'Unknown status filter: {status}')
        search = (search or '').strip() or None
        key = f"{CACHE_PREFIX}list:{viewer['role']}:{viewer['id']}:{status.value if status else ''}:{search or ''}:{limit or ''}"

        def load():
            query = self._scoped_query(viewer)
            if query is None:
                return []
            if status is not None:
                query = query.filter(_status_clause(status))
            if search:
                pattern = f'%{search}%'
                query = query.join(Profile, Profile.id == Submission.contractor_user_id).filter(or_(
                    Profile.full_name.ilike(pattern),
                    Profile.email.ilike(pattern),
                    Submission.project_name.ilike(pattern),
                    Submission.description.ilike(pattern)
                ))
            query = query.order_by(Submission.created_at.desc())
            if limit:
                query = query.limit(limit)
            return [self.serialize(s, viewer['role']) for s in query.all()]

        return self.cache.get_or_load(key, load)

    def submitted_periods(self, contractor_id):
        """Work periods (YYYY-MM) the contractor has already submitted"""
        key = f'{CACHE_PREFIX}periods:{contractor_id}'

        def load():
            rows = self.db.session.query(Submission.work_period).filter(
                Submission.contractor_user_id == contractor_id
            ).all()
            return sorted({row.work_period for row in rows})

        return self.cache.get_or_load(key, load)

    def get_submission(self, submission_id, viewer):
        submission = self._get_visible(submission_id, viewer)
        return self.serialize(submission, viewer['role'], detailed=True)

    def get_visible_record(self, submission_id, viewer):
        """The Submission row itself, after the same access checks as get_submission"""
        return self._get_visible(submission_id, viewer)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_submission(self, contractor, draft):
        contractor_id = contractor['id']
        period, period_start, period_end = parse_work_period(draft.get('work_period'))

        existing = Submission.query.filter_by(contractor_user_id=contractor_id, work_period=period).first()
        if existing is not None:
            raise DuplicatePeriodError(f'A timesheet for {period} has already been submitted.')

        contract = self.db.session.get(Contractor, contractor_id)
        fields = self._validate_fields(draft, period_start, period_end, contractor_id, contract)
        rates = self._current_rates(contract)
        now = datetime.now(timezone.utc)

        submission = Submission(
            id=str(uuid.uuid4()),
            contractor_user_id=contractor_id,
            manager_id=contract.manager_id if contract else None,
            work_period=period,
            period_start=period_start,
            period_end=period_end,
            status=to_stored_status(SubmissionStatus.PENDING_MANAGER),
            submitted_at=now,
            **fields
        )
        self._apply_rates(submission, rates)
        self.db.session.add(submission)
        self.db.session.flush()

        create_notification(
            submission.manager_id,
            'submitted',
            'New timesheet submitted',
            f"{contractor.get('full_name') or 'A contractor'} submitted hours for {period}.",
            submission_id=submission.id
        )
        self._commit()
        logger.info(f"Submission {submission.id} created for {contractor_id} ({period}), total {submission.total_amount}")
        return self.serialize(submission, contractor['role'])

    def resubmit_submission(self, submission_id, contractor, updates):
        submission = self._get_or_404(submission_id)
        if submission.contractor_user_id != contractor['id']:
            raise AuthorizationError('You can only resubmit your own submissions.')

        status = map_status(submission.status, submission.paid_at)
        if status not in RESUBMITTABLE:
            raise StatusMismatchError(f'Cannot resubmit a submission that is {status_label(status)}.')

        updates = dict(updates or {})
        if 'regular_hours' in updates:
            updates.setdefault('hours_submitted', updates['regular_hours'])
        draft = self._current_draft(submission)
        draft.update({k: v for k, v in updates.items() if k in EDITABLE_FIELDS})

        period, period_start, period_end = parse_work_period(draft.get('work_period'))
        if period != submission.work_period:
            clash = Submission.query.filter(
                Submission.contractor_user_id == submission.contractor_user_id,
                Submission.work_period == period,
                Submission.id != submission.id
            ).first()
            if clash is not None:
                raise DuplicatePeriodError(f'A timesheet for {period} has already been submitted.')

        contract = self.db.session.get(Contractor, submission.contractor_user_id)
        fields = self._validate_fields(draft, period_start, period_end, submission.contractor_user_id, contract)
        rates = self._current_rates(contract)
        if submission.regular_rate is not None and Decimal(submission.regular_rate) != rates['regular_rate']:
            logger.info(
                f"Submission {submission.id} recalculated at current rate "
                f"{rates['regular_rate']} (was {submission.regular_rate})"
            )

        for name, value in fields.items():
            setattr(submission, name, value)
        submission.work_period = period
        submission.period_start = period_start
        submission.period_end = period_end
        self._apply_rates(submission, rates)
        submission.status = to_stored_status(SubmissionStatus.PENDING_MANAGER)
        submission.rejection_reason = None
        submission.submitted_at = datetime.now(timezone.utc)
        submission.manager_id = contract.manager_id if contract else submission.manager_id
        # Totals changed, so any stored invoice is out of date
        submission.invoice_status = None
        submission.invoice_path = None

        create_notification(
            submission.manager_id,
            'resubmitted',
            'Timesheet resubmitted',
            f"{contractor.get('full_name') or 'A contractor'} resubmitted hours for {period}.",
            submission_id=submission.id
        )
        self._commit()
        logger.info(f"Submission {submission.id} resubmitted by {contractor['id']}")
        return self.serialize(submission, contractor['role'])

    def delete_submission(self, submission_id, contractor):
        submission = self._get_or_404(submission_id)
        if submission.contractor_user_id != contractor['id']:
            raise AuthorizationError('You can only delete your own submissions.')

        status = map_status(submission.status, submission.paid_at)
        if status is SubmissionStatus.PAID:
            raise StatusMismatchError('Cannot delete a paid submission.')
        if status is SubmissionStatus.AWAITING_ADMIN_PAYMENT:
            raise StatusMismatchError('Cannot delete an approved submission that is awaiting payment.')

        self.db.session.delete(submission)
        self._commit()
        logger.info(f"Submission {submission_id} deleted by {contractor['id']}")

    def apply_action(self, submission_id, actor, action, note=None, updates=None):
        """Run one workflow transition if the actor's role allows it from the current status"""
        try:
            action = Action(str(action).strip().upper())
        except ValueError:
            raise ValidationError(f'Unknown action: {action}')

        submission = self._get_visible(submission_id, actor)
        status = map_status(submission.status, submission.paid_at)
        allowed = find_allowed_action(actor['role'], status, action)
        if allowed is None:
            raise StatusMismatchError(
                f'{action.value} is not allowed for a submission that is {status_label(status)}.'
            )

        note = (note or '').strip() or None
        if allowed.requires_note and not note:
            raise ValidationError(f'A note is required to {allowed.label.lower()}.')

        if action is Action.RESUBMIT:
            return self.resubmit_submission(submission_id, actor, updates or {})

        now = datetime.now(timezone.utc)
        period = submission.work_period

        if action is Action.APPROVE:
            submission.status = to_stored_status(SubmissionStatus.AWAITING_ADMIN_PAYMENT)
            submission.approved_at = now
            submission.manager_id = actor['id']
            submission.rejection_reason = None
            create_notification(submission.contractor_user_id, 'manager_approved', 'Timesheet approved',
                                f'Your timesheet for {period} was approved and is awaiting payment.',
                                submission_id=submission.id)

        elif action is Action.REJECT:
            submission.status = to_stored_status(SubmissionStatus.REJECTED_CONTRACTOR)
            submission.rejection_reason = note
            create_notification(submission.contractor_user_id, 'manager_rejected', 'Timesheet rejected',
                                f'Your timesheet for {period} was rejected: {note}',
                                submission_id=submission.id)

        elif action is Action.RESPOND_RESUBMIT:
            submission.status = to_stored_status(SubmissionStatus.AWAITING_ADMIN_PAYMENT)
            submission.manager_note = note
            for admin in self._active_admins():
                create_notification(admin.id, 'clarification_resubmitted', 'Clarification provided',
                                    f'The manager responded on the {period} timesheet: {note}',
                                    submission_id=submission.id)

        elif action is Action.RESPOND_REJECT:
            submission.status = to_stored_status(SubmissionStatus.REJECTED_CONTRACTOR)
            submission.rejection_reason = note
            submission.manager_note = note
            create_notification(submission.contractor_user_id, 'manager_rejected', 'Timesheet rejected',
                                f'Your timesheet for {period} was sent back: {note}',
                                submission_id=submission.id)

        elif action is Action.PAY:
            submission.status = to_stored_status(SubmissionStatus.PAID)
            submission.paid_at = now
            self.db.session.add(Payment(
                submission_id=submission.id,
                admin_id=actor['id'],
                contractor_id=submission.contractor_user_id,
                amount=submission.total_amount or Decimal('0'),
                paid_at=now
            ))
            create_notification(submission.contractor_user_id, 'paid', 'Payment sent',
                                f'Your timesheet for {period} has been paid.',
                                submission_id=submission.id)

        elif action is Action.REQUEST_CLARIFICATION:
            submission.status = to_stored_status(SubmissionStatus.CLARIFICATION_REQUESTED)
            submission.admin_note = note
            create_notification(self._manager_for(submission), 'needs_clarification', 'Clarification requested',
                                f'An admin needs clarification on the {period} timesheet: {note}',
                                submission_id=submission.id)

        submission.updated_at = now
        self._commit()
        logger.info(f"Submission {submission.id}: {action.value} by {actor['role']} {actor['id']}")
        return self.serialize(submission, actor['role'], detailed=True)

    # ------------------------------------------------------------------
    # Shaping
    # ------------------------------------------------------------------

    def serialize(self, submission, role, detailed=False):
        status = map_status(submission.status, submission.paid_at)
        contractor = submission.contractor
        data = submission.to_dict()
        data.update({
            'status': status.value,
            'stored_status': submission.status,
            'status_label': status_label(status),
            'contractor_name': contractor.full_name if contractor else None,
            'contractor_email': contractor.email if contractor else None,
            'allowed_actions': [action_to_dict(a) for a in get_allowed_actions(role, status)],
        })
        if detailed:
            manager = submission.manager
            if manager is None:
                manager_id = self._manager_for(submission)
                manager = self.db.session.get(Profile, manager_id) if manager_id else None
            data['manager_name'] = manager.full_name if manager else None
            data['invoice_error'] = submission.invoice_error
        return data

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _scoped_query(self, viewer):
        role = viewer['role']
        if role == 'admin':
            return Submission.query
        if role == 'contractor':
            return Submission.query.filter(Submission.contractor_user_id == viewer['id'])
        if role == 'manager':
            return Submission.query.join(
                Contractor, Contractor.contractor_id == Submission.contractor_user_id
            ).filter(Contractor.manager_id == viewer['id'])
        return None

    def _get_or_404(self, submission_id):
        submission = self.db.session.get(Submission, str(submission_id))
        if submission is None:
            raise NotFoundError('Submission not found')
        return submission

    def _get_visible(self, submission_id, viewer):
        submission = self._get_or_404(submission_id)
        if not self.can_view(submission, viewer):
            raise AuthorizationError('You do not have access to this submission.')
        return submission

    def can_view(self, submission, viewer):
        role = viewer['role']
        if role == 'admin':
            return True
        if role == 'contractor':
            return submission.contractor_user_id == viewer['id']
        if role == 'manager':
            # Only the contractor's current reporting manager, as in _scoped_query
            contract = self.db.session.get(Contractor, submission.contractor_user_id)
            return contract is not None and contract.manager_id == viewer['id']
        return False

    def _manager_for(self, submission):
        contract = self.db.session.get(Contractor, submission.contractor_user_id)
        if contract is not None and contract.manager_id:
            return contract.manager_id
        return submission.manager_id

    def _active_admins(self):
        return Profile.query.filter_by(role='admin', is_active=True).all()

    def _current_draft(self, submission):
        return {
            'work_period': submission.work_period,
            'hours_submitted': submission.regular_hours,
            'overtime_hours': submission.overtime_hours,
            'overtime_description': submission.overtime_description,
            'description': submission.description,
            'excluded_dates': list(submission.excluded_dates or []),
            'project_id': submission.project_id,
        }

    def _validate_fields(self, draft, period_start, period_end, contractor_id, contract):
        regular_hours = to_safe_number(draft.get('hours_submitted', draft.get('regular_hours')))
        if regular_hours <= 0:
            raise ValidationError('Regular hours must be greater than zero.')

        description = (draft.get('description') or '').strip()
        if not description:
            raise ValidationError('Description is required.')

        overtime_hours = to_safe_number(draft.get('overtime_hours'))
        if overtime_hours < 0:
            raise ValidationError('Overtime hours cannot be negative.')
        overtime_description = (draft.get('overtime_description') or '').strip() or None
        if overtime_hours > 0 and not overtime_description:
            raise ValidationError('Overtime description is required when overtime hours are entered.')
        if overtime_hours == 0:
            overtime_description = None

        excluded = draft.get('excluded_dates') or []
        if not isinstance(excluded, (list, tuple)):
            raise ValidationError('excluded_dates must be a list of dates.')
        excluded_dates = set()
        for value in excluded:
            day = parse_date(value, 'excluded_dates')
            if not period_start <= day <= period_end:
                raise ValidationError(f'Excluded date {day.isoformat()} is outside the work period.')
            excluded_dates.add(day.isoformat())

        project_id = draft.get('project_id') or None
        if project_id:
            project = self.db.session.get(Project, str(project_id))
            if project is None or not project.is_enabled:
                raise ValidationError('Selected project is not available.')
            assigned = ProjectAssignment.query.filter_by(project_id=project.id, contractor_id=contractor_id).first()
            if assigned is None:
                raise ValidationError('You are not assigned to the selected project.')
            project_name = project.name
        else:
            project_name = (contract.default_project_name if contract else None) or DEFAULT_PROJECT_NAME

        return {
            'regular_hours': regular_hours,
            'overtime_hours': overtime_hours,
            'overtime_description': overtime_description,
            'description': description,
            'excluded_dates': sorted(excluded_dates),
            'project_id': project_id,
            'project_name': project_name,
        }

    def _current_rates(self, contract):
        default_hourly = to_safe_number(current_app.config.get('DEFAULT_HOURLY_RATE'))
        multiplier = to_safe_number(current_app.config.get('DEFAULT_OVERTIME_MULTIPLIER'))

        rate_type = normalize_pay_type(contract.rate_type if contract else None)
        hourly = to_safe_number(contract.hourly_rate) if contract and contract.hourly_rate is not None else default_hourly
        if contract and contract.overtime_rate is not None:
            overtime = to_safe_number(contract.overtime_rate)
        else:
            overtime = default_overtime_rate(hourly, multiplier)
        fixed = to_safe_number(contract.fixed_rate) if contract else Decimal('0')

        if rate_type == PAY_TYPE_FIXED:
            return {'rate_type': rate_type, 'regular_rate': fixed, 'overtime_rate': None, 'monthly_rate': fixed}
        return {'rate_type': rate_type, 'regular_rate': hourly, 'overtime_rate': overtime, 'monthly_rate': fixed}

    def _apply_rates(self, submission, rates):
        submission.rate_type = rates['rate_type']
        submission.regular_rate = rates['regular_rate']
        submission.overtime_rate = rates['overtime_rate']
        submission.total_amount = calculate_total_for_storage(
            rates['rate_type'],
            submission.regular_hours,
            submission.overtime_hours,
            rates['regular_rate'],
            rates['overtime_rate'],
            rates['monthly_rate']
        )

    def _commit(self):
        try:
            self.db.session.commit()
        except Exception:
            self.db.session.rollback()
            raise
        finally:
            self.cache.invalidate(CACHE_PREFIX)


def _status_clause(status):
    matches = func.lower(Submission.status).in_(stored_values_for(status))
    if status is SubmissionStatus.PAID:
        return or_(matches, Submission.paid_at.isnot(None))
    return matches & Submission.paid_at.is_(None)
