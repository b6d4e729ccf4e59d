from freezegun import freeze_time


def test_admin_dashboard(client, users, auth_headers, make_submission, repository, viewer):
    with freeze_time('2026-03-10 12:00:00'):
        make_submission(users.contractor, '2026-01', status='pending_manager')
        make_submission(users.other_contractor, '2026-01', status='approved')
        to_pay = make_submission(users.contractor, '2026-02', status='awaiting_admin_payment', total_amount=17500)
        repository.apply_action(to_pay.id, viewer(users.admin), 'PAY')

        response = client.get('/api/dashboard/admin', headers=auth_headers(users.admin))

    body = response.get_json()
    assert body == {
        'total_active_contractors': 2,
        'pending_manager_count': 1,
        'awaiting_payment_count': 1,
        'total_paid_this_month': 17500.0,
    }


def test_manager_dashboard(client, users, auth_headers, make_submission):
    make_submission(users.contractor, '2026-01', status='pending_manager')
    make_submission(users.contractor, '2025-12', status='rejected')
    make_submission(users.other_contractor, '2026-01', status='pending_manager')

    body = client.get('/api/dashboard/manager', headers=auth_headers(users.manager)).get_json()

    assert body['team_size'] == 1
    assert body['status_counts']['PENDING_MANAGER'] == 1
    assert body['status_counts']['REJECTED_CONTRACTOR'] == 1
    assert body['status_counts']['PAID'] == 0
    assert len(body['pending_approvals']) == 1
    assert len(body['recent_submissions']) == 2


def test_dashboards_are_role_guarded(client, users, auth_headers):
    assert client.get('/api/dashboard/admin', headers=auth_headers(users.manager)).status_code == 403
    assert client.get('/api/dashboard/manager', headers=auth_headers(users.admin)).status_code == 403
