"""
Invoice generation and storage

An invoice is produced on demand the first time somebody asks for a
submission's PDF. The PDF is stored once (S3 in production, the local upload
folder in development and tests) and every later request only mints a new
short-lived download URL for the stored file.
"""
import logging
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import BytesIO
from xml.sax.saxutils import escape

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from flask import url_for
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.exc import IntegrityError

from app import db
from app.errors import AuthorizationError, InvoiceGenerationError, NotFoundError
from app.models.contractor import ContractorProfile
from app.models.submission import Submission
from app.services.submissions import CACHE_PREFIX
from app.utils.calculations import PAY_TYPE_FIXED, round_currency, to_safe_number

logger = logging.getLogger(__name__)

INVOICE_STATUS_GENERATED = 'GENERATED'
INVOICE_STATUS_FAILED = 'FAILED'
MAX_NUMBER_ATTEMPTS = 3


class S3InvoiceStorage:
    """Invoice PDFs in an S3 bucket, downloaded through presigned URLs"""

    def __init__(self, bucket, region):
        self.bucket = bucket
        self.region = region
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('s3', region_name=self.region)
        return self._client

    def save(self, path, pdf_bytes):
        try:
            self.client.put_object(Bucket=self.bucket, Key=path, Body=pdf_bytes, ContentType='application/pdf')
        except (BotoCoreError, ClientError) as e:
            raise InvoiceGenerationError(f'Failed to upload invoice PDF: {e}')

    def exists(self, path):
        try:
            self.client.head_object(Bucket=self.bucket, Key=path)
            return True
        except ClientError:
            return False

    def signed_url(self, path, expires_in):
        try:
            return self.client.generate_presigned_url(
                'get_object',
                Params={'Bucket': self.bucket, 'Key': path},
                ExpiresIn=expires_in
            )
        except (BotoCoreError, ClientError) as e:
            raise InvoiceGenerationError(f'Failed to generate invoice URL: {e}')


class LocalInvoiceStorage:
    """Invoice PDFs under the upload folder, served through timed tokens"""

    salt = 'invoice-file'

    def __init__(self, root, secret_key):
        self.root = root
        self.serializer = URLSafeTimedSerializer(secret_key, salt=self.salt)

    def _full_path(self, path):
        full = os.path.abspath(os.path.join(self.root, path))
        if not full.startswith(os.path.abspath(self.root) + os.sep):
            raise NotFoundError('Invoice file not found')
        return full

    def save(self, path, pdf_bytes):
        full = self._full_path(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, 'wb') as f:
            f.write(pdf_bytes)

    def exists(self, path):
        return os.path.isfile(self._full_path(path))

    def signed_url(self, path, expires_in):
        token = self.serializer.dumps({'path': path})
        return url_for('invoices.download_invoice_file', token=token, _external=True)

    def open_token(self, token, max_age):
        """Resolve a download token to (filename, bytes)"""
        try:
            payload = self.serializer.loads(token, max_age=max_age)
        except SignatureExpired:
            raise AuthorizationError('Invoice link has expired')
        except BadSignature:
            raise NotFoundError('Invoice file not found')

        full = self._full_path(payload['path'])
        if not os.path.isfile(full):
            raise NotFoundError('Invoice file not found')
        with open(full, 'rb') as f:
            return os.path.basename(full), f.read()


class InvoiceService:

    def __init__(self, storage, number_prefix='INV', due_days=15, currency='USD',
                 url_ttl_seconds=300, company=None, cache=None):
        self.storage = storage
        self.cache = cache
        self.number_prefix = number_prefix
        self.due_days = due_days
        self.currency = currency
        self.url_ttl_seconds = url_ttl_seconds
        self.company = company or {}

    @classmethod
    def from_config(cls, config, cache=None):
        if config.get('INVOICE_STORAGE', 's3') == 'local':
            storage = LocalInvoiceStorage(os.path.join(config['UPLOAD_FOLDER'], 'invoices'), config['SECRET_KEY'])
        else:
            storage = S3InvoiceStorage(config['INVOICE_BUCKET'], config.get('AWS_REGION'))

        company = {
            'name': config.get('COMPANY_NAME'),
            'address_lines': [line for line in (
                config.get('COMPANY_ADDRESS_LINE1'),
                config.get('COMPANY_ADDRESS_LINE2'),
                config.get('COMPANY_COUNTRY'),
            ) if line],
        }
        return cls(
            storage,
            number_prefix=config.get('INVOICE_NUMBER_PREFIX', 'INV'),
            due_days=config.get('INVOICE_DUE_DAYS', 15),
            currency=config.get('INVOICE_CURRENCY', 'USD'),
            url_ttl_seconds=config.get('INVOICE_SIGNED_URL_TTL_SECONDS', 300),
            company=company,
            cache=cache
        )

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------

    def next_invoice_number(self, work_period):
        """{PREFIX}-{YYYYMM}-{NNNNNN}, sequenced per work period"""
        stem = f"{self.number_prefix}-{work_period.replace('-', '')}-"
        sequence = Submission.query.filter(Submission.invoice_number.like(f'{stem}%')).count() + 1
        number = f'{stem}{sequence:06d}'
        while Submission.query.filter_by(invoice_number=number).first() is not None:
            sequence += 1
            number = f'{stem}{sequence:06d}'
        return number

    # ------------------------------------------------------------------
    # Download URLs
    # ------------------------------------------------------------------

    def get_invoice_url(self, submission, force=False):
        """Signed URL for the submission's invoice, generating the PDF if needed"""
        if force or not self._has_stored_invoice(submission):
            self.generate(submission)

        url = self.storage.signed_url(submission.invoice_path, self.url_ttl_seconds)
        return {
            'url': url,
            'expiresIn': self.url_ttl_seconds,
            'invoiceNumber': submission.invoice_number
        }

    def _has_stored_invoice(self, submission):
        if submission.invoice_status != INVOICE_STATUS_GENERATED or not submission.invoice_path:
            return False
        return self.storage.exists(submission.invoice_path)

    def generate(self, submission):
        submission_id = submission.id
        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            try:
                self._generate_once(submission)
                logger.info(f"Generated invoice {submission.invoice_number} for submission {submission_id}")
                return submission
            except IntegrityError:
                db.session.rollback()
                submission = db.session.get(Submission, submission_id)
                submission.invoice_number = None
                logger.warning(f"Invoice number collision for submission {submission_id} (attempt {attempt})")
            except Exception as e:
                db.session.rollback()
                self._mark_failed(submission_id, e)
                if isinstance(e, InvoiceGenerationError):
                    raise
                raise InvoiceGenerationError('Failed to generate invoice')

        self._mark_failed(submission_id, 'Could not allocate a unique invoice number')
        raise InvoiceGenerationError('Failed to generate invoice')

    def _generate_once(self, submission):
        number = submission.invoice_number or self.next_invoice_number(submission.work_period)
        issued_on = date.today()
        pdf_bytes = self.build_pdf(submission, number, issued_on)

        safe_number = ''.join(c if c.isalnum() or c == '-' else '-' for c in number)
        path = f'{submission.contractor_user_id}/{submission.id}/invoice-{safe_number}.pdf'

        submission.invoice_number = number
        db.session.flush()  # claims the number before the upload
        self.storage.save(path, pdf_bytes)

        submission.invoice_path = path
        submission.invoice_status = INVOICE_STATUS_GENERATED
        submission.invoice_generated_at = datetime.now(timezone.utc)
        submission.invoice_error = None
        db.session.commit()
        self._invalidate()

    def _invalidate(self):
        # Listed submissions carry invoice_number and invoice_status
        if self.cache is not None:
            self.cache.invalidate(CACHE_PREFIX)

    def _mark_failed(self, submission_id, error):
        logger.error(f"Invoice generation failed for submission {submission_id}: {error}")
        submission = db.session.get(Submission, submission_id)
        if submission is None:
            return
        submission.invoice_status = INVOICE_STATUS_FAILED
        submission.invoice_error = str(error)[:1000]
        try:
            db.session.commit()
            self._invalidate()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Could not record invoice failure for {submission_id}: {e}")

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    def line_items(self, submission):
        period = submission.work_period
        if submission.rate_type == PAY_TYPE_FIXED:
            monthly = round_currency(submission.regular_rate)
            return [(f'Monthly fixed fee ({period})', Decimal('1'), monthly, monthly)]

        items = []
        regular_hours = to_safe_number(submission.regular_hours)
        regular_rate = to_safe_number(submission.regular_rate)
        items.append((f'Regular hours ({period})', regular_hours, regular_rate,
                      round_currency(regular_hours * regular_rate)))
        overtime_hours = to_safe_number(submission.overtime_hours)
        if overtime_hours > 0:
            overtime_rate = to_safe_number(submission.overtime_rate)
            items.append((f'Overtime hours ({period})', overtime_hours, overtime_rate,
                          round_currency(overtime_hours * overtime_rate)))
        return items

    def build_pdf(self, submission, invoice_number, issued_on):
        contractor = submission.contractor
        details = db.session.get(ContractorProfile, submission.contractor_user_id)
        styles = getSampleStyleSheet()
        due_on = issued_on + timedelta(days=self.due_days)

        def para(text, style='Normal'):
            return Paragraph(escape(str(text)), styles[style])

        def money(amount):
            return f'{self.currency} {round_currency(amount):,.2f}'

        story = [
            para('INVOICE', 'Title'),
            para(f'Invoice number: {invoice_number}'),
            para(f'Invoice date: {issued_on.isoformat()}'),
            para(f'Due date: {due_on.isoformat()}'),
            para(f'Work period: {submission.work_period}'),
            Spacer(1, 0.25 * inch),
        ]

        from_lines = [contractor.full_name if contractor else 'Contractor']
        if details is not None:
            from_lines.extend(details.address_lines())
        if contractor is not None:
            from_lines.append(contractor.email)
        bill_to_lines = [self.company.get('name') or ''] + list(self.company.get('address_lines') or [])

        parties = Table([
            [para('From', 'Heading4'), para('Bill To', 'Heading4')],
            [[para(line) for line in from_lines], [para(line) for line in bill_to_lines if line]],
        ], colWidths=[3.25 * inch, 3.25 * inch])
        parties.setStyle(TableStyle([('VALIGN', (0, 0), (-1, -1), 'TOP')]))
        story.extend([parties, Spacer(1, 0.3 * inch)])

        rows = [['Description', 'Quantity', 'Rate', 'Amount']]
        for description, quantity, rate, amount in self.line_items(submission):
            rows.append([para(description), f'{quantity:,.2f}', money(rate), money(amount)])
        rows.append(['', '', 'Total', money(submission.total_amount)])

        items = Table(rows, colWidths=[3.1 * inch, 1 * inch, 1.2 * inch, 1.2 * inch])
        items.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f2937')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('LINEBELOW', (0, 0), (-1, -2), 0.25, colors.grey),
            ('LINEABOVE', (0, -1), (-1, -1), 1, colors.black),
        ]))
        story.extend([items, Spacer(1, 0.3 * inch)])

        if details is not None and details.bank_account_number:
            story.append(para('Payment Details', 'Heading4'))
            for label, value in (
                ('Account name', details.bank_account_name),
                ('Bank', details.bank_name),
                ('Bank address', details.bank_address),
                ('SWIFT', details.swift_code),
                ('Routing number', details.bank_routing_number),
                ('Account number', details.bank_account_number),
                ('Account type', details.account_type),
            ):
                if value:
                    story.append(para(f'{label}: {value}'))

        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=LETTER, title=f'Invoice {invoice_number}')
        doc.build(story)
        return buffer.getvalue()
