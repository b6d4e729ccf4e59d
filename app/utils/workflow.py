"""
Submission status workflow

Stored status strings come in two generations (legacy lowercase values and
the current pipeline values). Everything outside the database works with the
canonical SubmissionStatus, and the role-action table below decides which
transitions a viewer is offered and allowed to perform.
"""
import logging
from collections import namedtuple
from enum import Enum

logger = logging.getLogger(__name__)


class SubmissionStatus(str, Enum):
    PENDING_MANAGER = 'PENDING_MANAGER'
    REJECTED_CONTRACTOR = 'REJECTED_CONTRACTOR'
    CLARIFICATION_REQUESTED = 'CLARIFICATION_REQUESTED'
    AWAITING_ADMIN_PAYMENT = 'AWAITING_ADMIN_PAYMENT'
    PAID = 'PAID'


STATUS_LABELS = {
    SubmissionStatus.PENDING_MANAGER: 'Pending Manager Review',
    SubmissionStatus.REJECTED_CONTRACTOR: 'Rejected - Action Required',
    SubmissionStatus.CLARIFICATION_REQUESTED: 'Clarification Requested',
    SubmissionStatus.AWAITING_ADMIN_PAYMENT: 'Approved - Awaiting Payment',
    SubmissionStatus.PAID: 'Paid',
}


# Value written to submissions.status for each canonical status
STORED_STATUS = {
    SubmissionStatus.PENDING_MANAGER: 'pending_manager',
    SubmissionStatus.REJECTED_CONTRACTOR: 'rejected_contractor',
    SubmissionStatus.CLARIFICATION_REQUESTED: 'clarification_requested',
    SubmissionStatus.AWAITING_ADMIN_PAYMENT: 'awaiting_admin_payment',
    SubmissionStatus.PAID: 'paid',
}


LEGACY_STATUS = {
    'draft': SubmissionStatus.PENDING_MANAGER,
    'submitted': SubmissionStatus.PENDING_MANAGER,
    'pending_review': SubmissionStatus.PENDING_MANAGER,
    'approved': SubmissionStatus.AWAITING_ADMIN_PAYMENT,
    'rejected': SubmissionStatus.REJECTED_CONTRACTOR,
    'needs_clarification': SubmissionStatus.CLARIFICATION_REQUESTED,
    'paid': SubmissionStatus.PAID,
}


_STATUS_LOOKUP = dict(LEGACY_STATUS)
_STATUS_LOOKUP.update({stored: status for status, stored in STORED_STATUS.items()})


def map_status(stored_status, paid_at=None):
    """Map a stored status string (legacy or current) to a SubmissionStatus"""
    if paid_at is not None:
        return SubmissionStatus.PAID

    key = (stored_status or '').strip().lower()
    status = _STATUS_LOOKUP.get(key)
    if status is None:
        logger.warning(f"Unknown submission status {stored_status!r}, treating as {SubmissionStatus.PENDING_MANAGER.value}")
        return SubmissionStatus.PENDING_MANAGER
    return status


def to_stored_status(status):
    return STORED_STATUS[SubmissionStatus(status)]


def stored_values_for(status):
    """All stored strings that map to the given status"""
    status = SubmissionStatus(status)
    return sorted(value for value, mapped in _STATUS_LOOKUP.items() if mapped is status)


def status_label(status):
    return STATUS_LABELS[SubmissionStatus(status)]


class Action(str, Enum):
    RESUBMIT = 'RESUBMIT'
    APPROVE = 'APPROVE'
    REJECT = 'REJECT'
    RESPOND_RESUBMIT = 'RESPOND_RESUBMIT'
    RESPOND_REJECT = 'RESPOND_REJECT'
    PAY = 'PAY'
    REQUEST_CLARIFICATION = 'REQUEST_CLARIFICATION'


AllowedAction = namedtuple('AllowedAction', ['action', 'label', 'requires_note'])


ACTION_TABLE = {
    ('contractor', SubmissionStatus.REJECTED_CONTRACTOR): (
        AllowedAction(Action.RESUBMIT, 'Resubmit', False),
    ),
    ('manager', SubmissionStatus.PENDING_MANAGER): (
        AllowedAction(Action.APPROVE, 'Approve', False),
        AllowedAction(Action.REJECT, 'Reject', True),
    ),
    ('manager', SubmissionStatus.CLARIFICATION_REQUESTED): (
        AllowedAction(Action.RESPOND_RESUBMIT, 'Resubmit to Admin', True),
        AllowedAction(Action.RESPOND_REJECT, 'Reject to Contractor', True),
    ),
    ('admin', SubmissionStatus.AWAITING_ADMIN_PAYMENT): (
        AllowedAction(Action.PAY, 'Mark as Paid', False),
        AllowedAction(Action.REQUEST_CLARIFICATION, 'Request Clarification', True),
    ),
}


def get_allowed_actions(role, status):
    """Ordered actions the role may take on a submission in this status"""
    role = (role or '').strip().lower()
    return list(ACTION_TABLE.get((role, SubmissionStatus(status)), ()))


def find_allowed_action(role, status, action):
    for allowed in get_allowed_actions(role, status):
        if allowed.action == action:
            return allowed
    return None


def action_to_dict(allowed):
    return {
        'action': allowed.action.value,
        'label': allowed.label,
        'requiresNote': allowed.requires_note
    }
