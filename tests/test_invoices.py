import re
from datetime import timedelta
from decimal import Decimal
from urllib.parse import urlparse

import pytest
from freezegun import freeze_time

from app import db
from app.errors import InvoiceGenerationError
from app.models import Submission


@pytest.fixture
def invoice_service(app):
    return app.extensions['invoice_service']


def _path(url):
    return urlparse(url).path


class TestInvoiceEndpoint:

    def test_owner_gets_signed_url_and_pdf(self, client, users, auth_headers, make_submission):
        submission = make_submission(users.contractor, '2026-02')

        response = client.get(f'/api/submissions/{submission.id}/invoice', headers=auth_headers(users.contractor))

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'success'
        assert body['data']['invoiceNumber'] == 'INV-202602-000001'
        assert body['data']['expiresIn'] == 300
        assert '/api/invoices/files/' in body['data']['url']

        pdf = client.get(_path(body['data']['url']))
        assert pdf.status_code == 200
        assert pdf.mimetype == 'application/pdf'
        assert pdf.data.startswith(b'%PDF')

        stored = db.session.get(Submission, submission.id)
        assert stored.invoice_status == 'GENERATED'
        assert stored.invoice_path.endswith('invoice-INV-202602-000001.pdf')

    def test_invoice_is_generated_once(self, client, users, auth_headers, make_submission, invoice_service,
                                       monkeypatch):
        submission = make_submission(users.contractor, '2026-02')
        client.get(f'/api/submissions/{submission.id}/invoice', headers=auth_headers(users.contractor))

        def fail(*args, **kwargs):
            raise AssertionError('invoice should not be rebuilt')

        monkeypatch.setattr(invoice_service, 'build_pdf', fail)
        response = client.get(f'/api/invoices/{submission.id}', headers=auth_headers(users.admin))
        assert response.status_code == 200
        assert response.get_json()['data']['invoiceNumber'] == 'INV-202602-000001'

    def test_regenerate_keeps_number(self, client, users, auth_headers, make_submission):
        submission = make_submission(users.contractor, '2026-02')
        client.get(f'/api/submissions/{submission.id}/invoice', headers=auth_headers(users.contractor))

        response = client.post(f'/api/submissions/{submission.id}/regenerate-invoice',
                               headers=auth_headers(users.admin))
        assert response.status_code == 200
        assert response.get_json()['data']['invoiceNumber'] == 'INV-202602-000001'

    @pytest.mark.parametrize('who, expected', [
        ('contractor', 200),
        ('manager', 200),
        ('admin', 200),
        ('other_contractor', 403),
        ('other_manager', 403),
    ])
    def test_access(self, client, users, auth_headers, make_submission, who, expected):
        submission = make_submission(users.contractor, '2026-02')
        response = client.get(f'/api/invoices/{submission.id}', headers=auth_headers(getattr(users, who)))
        assert response.status_code == expected

    def test_requires_session(self, client, users, make_submission):
        submission = make_submission(users.contractor, '2026-02')
        response = client.get(f'/api/invoices/{submission.id}')
        assert response.status_code == 401

    def test_missing_submission(self, client, users, auth_headers):
        response = client.get('/api/invoices/unknown-id', headers=auth_headers(users.admin))
        assert response.status_code == 404

    def test_generation_failure_is_recorded(self, client, users, auth_headers, make_submission,
                                            invoice_service, monkeypatch):
        submission = make_submission(users.contractor, '2026-02')

        def broken(*args, **kwargs):
            raise RuntimeError('font missing')

        monkeypatch.setattr(invoice_service, 'build_pdf', broken)
        response = client.get(f'/api/submissions/{submission.id}/invoice', headers=auth_headers(users.contractor))

        assert response.status_code == 500
        assert response.get_json()['error'] == 'Invoice generation failed'
        stored = db.session.get(Submission, submission.id)
        assert stored.invoice_status == 'FAILED'
        assert 'font missing' in stored.invoice_error
        assert stored.invoice_number is None

    def test_download_link_expires(self, client, users, make_token, make_submission):
        with freeze_time('2026-03-01 10:00:00') as frozen:
            submission = make_submission(users.contractor, '2026-02')
            headers = {'Authorization': f'Bearer {make_token(users.contractor.id)}'}
            url = client.get(f'/api/invoices/{submission.id}', headers=headers).get_json()['data']['url']

            frozen.tick(timedelta(seconds=301))
            response = client.get(_path(url))

        assert response.status_code == 403

    def test_tampered_download_token(self, client):
        response = client.get('/api/invoices/files/not-a-real-token')
        assert response.status_code == 404


class TestSubmissionListAfterInvoicing:

    def test_generated_invoice_shows_in_cached_list(self, app, repository, users, viewer, make_submission,
                                                    invoice_service):
        submission = make_submission(users.contractor, '2026-02')
        before = repository.list_submissions(viewer(users.admin))
        assert before[0]['invoice_number'] is None

        with app.test_request_context():
            invoice_service.get_invoice_url(submission)

        after = repository.list_submissions(viewer(users.admin))
        assert after[0]['invoice_number'] == 'INV-202602-000001'
        assert after[0]['invoice_status'] == 'GENERATED'

    def test_failed_invoice_shows_in_cached_list(self, repository, users, viewer, make_submission,
                                                 invoice_service, monkeypatch):
        submission = make_submission(users.contractor, '2026-02')
        repository.list_submissions(viewer(users.contractor))

        def broken(*args, **kwargs):
            raise RuntimeError('font missing')

        monkeypatch.setattr(invoice_service, 'build_pdf', broken)
        with pytest.raises(InvoiceGenerationError):
            invoice_service.get_invoice_url(submission)

        listed = repository.list_submissions(viewer(users.contractor))
        assert listed[0]['invoice_status'] == 'FAILED'


class TestInvoiceNumbers:

    def test_sequence_is_per_work_period(self, users, make_submission, invoice_service):
        first = make_submission(users.contractor, '2026-02')
        second = make_submission(users.other_contractor, '2026-02')
        other_month = make_submission(users.contractor, '2026-03')

        invoice_service.generate(first)
        invoice_service.generate(second)
        invoice_service.generate(other_month)

        assert first.invoice_number == 'INV-202602-000001'
        assert second.invoice_number == 'INV-202602-000002'
        assert other_month.invoice_number == 'INV-202603-000001'

    def test_number_format(self, users, make_submission, invoice_service):
        submission = make_submission(users.contractor, '2026-11')
        assert re.fullmatch(r'INV-\d{6}-\d{6}', invoice_service.next_invoice_number(submission.work_period))


class TestLineItems:

    def test_hourly_line_items_add_up_to_stored_total(self, users, make_submission, invoice_service):
        submission = make_submission(users.contractor, '2026-02', regular_hours=160, overtime_hours=10,
                                     regular_rate=100, overtime_rate=150, total_amount=17500)
        items = invoice_service.line_items(submission)

        assert [item[0] for item in items] == ['Regular hours (2026-02)', 'Overtime hours (2026-02)']
        assert sum(item[3] for item in items) == Decimal(submission.total_amount)

    def test_no_overtime_line_without_overtime(self, users, make_submission, invoice_service):
        submission = make_submission(users.contractor, '2026-02', overtime_hours=0)
        assert len(invoice_service.line_items(submission)) == 1

    def test_fixed_rate_single_line(self, users, make_submission, invoice_service):
        submission = make_submission(users.contractor, '2026-02', rate_type='fixed', regular_rate=9000,
                                     overtime_rate=None, total_amount=9000)
        items = invoice_service.line_items(submission)
        assert items == [('Monthly fixed fee (2026-02)', Decimal('1'), Decimal('9000.00'), Decimal('9000.00'))]
