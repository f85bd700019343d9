import os
import sys
import tempfile
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

_TMP_DIR = tempfile.mkdtemp(prefix='taqqafi-test-')
os.environ.setdefault('DATABASE_URL', f"sqlite:///{os.path.join(_TMP_DIR, 'api.sqlite3')}")
os.environ.setdefault('LOG_JSON', 'false')

from fastapi.testclient import TestClient

from taqqafi.db import reset_db
from taqqafi.main import app

SNB_SMS = "SNB Alert: SAR 1,250.00 deducted at Jarir Bookstore. Available balance: SAR 8,750.00"
RIYAD_SMS = "Riyad Bank: تم خصم مبلغ 350.00 ر.س من حسابك لدى مطعم البيك. الرصيد المتاح: 12,300.00 ر.س"
SALARY_SMS = "Your salary of SAR 9,000 has been credited"
CHAT_SMS = "Hey, are we still meeting at 5pm?"


@pytest.fixture()
def client():
    reset_db()
    with TestClient(app) as c:
        yield c


def _ingest(client, text, sender='SNB', **extra):
    r = client.post('/api/sms/ingest', json={'text': text, 'sender': sender, **extra})
    assert r.status_code == 200
    return r.json()


def test_health_ok(client):
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json() == {'ok': True}


def test_request_id_is_echoed(client):
    r = client.get('/api/categories', headers={'X-Request-ID': 'req-abc'})
    assert r.headers['X-Request-ID'] == 'req-abc'


def test_currency_and_category_catalogs(client):
    cur = client.get('/api/currencies').json()
    assert cur['default'] == 'SAR'
    assert len(cur['currencies']) == 21
    assert {'code', 'name', 'name_ar', 'symbol'} <= set(cur['currencies'][0])

    cats = client.get('/api/categories').json()['categories']
    assert cats[0] == 'Food'
    assert cats[-1] == 'Misc'


def test_classify(client):
    assert client.post('/api/sms/classify', json={'text': SNB_SMS}).json() == {'financial': True}
    assert client.post('/api/sms/classify', json={'text': CHAT_SMS}).json() == {'financial': False}


def test_classify_rejects_empty_text(client):
    r = client.post('/api/sms/classify', json={'text': ''})
    assert r.status_code == 422


def test_parse_arabic_message(client):
    r = client.post('/api/sms/parse', json={'text': RIYAD_SMS, 'sender': 'RiyadBank', 'default_currency': 'usd'})
    assert r.status_code == 200
    body = r.json()
    assert body['status'] == 'parsed'
    assert body['transaction']['amount'] == pytest.approx(350.0)
    assert body['transaction']['currency'] == 'SAR'
    assert body['transaction']['direction'] == 'debit'
    assert len(body['transaction']['content_hash']) == 64
    assert body['category'] == 'Food'


def test_parse_reports_rejection_reason(client):
    assert client.post('/api/sms/parse', json={'text': CHAT_SMS}).json() == {'status': 'not_financial'}
    balance_only = "Your available balance is SAR 8,750.00"
    assert client.post('/api/sms/parse', json={'text': balance_only}).json() == {'status': 'unparseable'}


def test_parse_rejects_unknown_default_currency(client):
    r = client.post('/api/sms/parse', json={'text': SNB_SMS, 'default_currency': 'XXX'})
    assert r.status_code == 422


def test_parse_batch_marks_in_batch_duplicates(client):
    r = client.post(
        '/api/sms/parse-batch',
        json={
            'messages': [
                {'text': SNB_SMS, 'sender': 'SNB'},
                {'text': RIYAD_SMS},
                {'text': SNB_SMS.upper() + '  ', 'sender': '+966500000000'},
                {'text': CHAT_SMS},
            ]
        },
    )
    assert r.status_code == 200
    body = r.json()
    assert body['count'] == 4
    assert [x['status'] for x in body['results']] == ['parsed', 'parsed', 'duplicate', 'not_financial']
    assert body['results'][2]['content_hash'] == body['results'][0]['transaction']['content_hash']


def test_ingest_creates_pending_once(client):
    first = _ingest(client, SNB_SMS)
    assert first['status'] == 'pending'
    pending = first['pending']
    assert pending['amount'] == pytest.approx(1250.0)
    assert pending['merchant'] == 'Jarir Bookstore'
    assert pending['category'] == 'Shopping'
    assert 1 <= pending['month'] <= 12

    again = _ingest(client, SNB_SMS, sender='+966500000000')
    assert again == {'status': 'duplicate', 'content_hash': pending['content_hash']}

    variant = _ingest(client, '  ' + SNB_SMS.upper())
    assert variant['status'] == 'duplicate'

    listed = client.get('/api/pending').json()
    assert listed['count'] == 1
    assert listed['pending'][0]['id'] == pending['id']


def test_ingest_ignores_credit_messages(client):
    assert _ingest(client, SALARY_SMS) == {'status': 'ignored_credit'}
    assert client.get('/api/pending').json()['count'] == 0


def test_ingest_non_financial_is_not_stored(client):
    assert _ingest(client, CHAT_SMS) == {'status': 'not_financial'}
    assert client.get('/api/pending').json()['count'] == 0


def test_approve_with_edits(client):
    pending = _ingest(client, SNB_SMS)['pending']
    r = client.post(
        f"/api/pending/{pending['id']}/approve",
        json={'amount': 99.5, 'category': 'Education', 'merchant': '  Jarir  '},
    )
    assert r.status_code == 200
    tx = r.json()['transaction']
    assert tx['amount'] == pytest.approx(99.5)
    assert tx['category'] == 'Education'
    assert tx['merchant'] == 'Jarir'
    assert tx['currency'] == 'SAR'
    assert tx['month'] == pending['month']

    assert client.get('/api/pending').json()['count'] == 0
    listed = client.get('/api/transactions', params={'month': pending['month'], 'year': pending['year']}).json()
    assert [t['id'] for t in listed['transactions']] == [tx['id']]
    assert client.get('/api/transactions', params={'direction': 'credit'}).json()['count'] == 0


def test_approve_without_body_keeps_parsed_values(client):
    pending = _ingest(client, RIYAD_SMS, sender='RiyadBank')['pending']
    r = client.post(f"/api/pending/{pending['id']}/approve")
    assert r.status_code == 200
    tx = r.json()['transaction']
    assert tx['amount'] == pytest.approx(350.0)
    assert tx['category'] == 'Food'


def test_approve_validates_edits(client):
    pending = _ingest(client, SNB_SMS)['pending']
    url = f"/api/pending/{pending['id']}/approve"
    assert client.post(url, json={'category': 'Groceries'}).status_code == 422
    assert client.post(url, json={'amount': 0}).status_code == 422
    assert client.post(url, json={'currency': 'ZZZ'}).status_code == 422
    assert client.post(url, json={'merchant': '   '}).status_code == 422
    # nothing was approved
    assert client.get('/api/pending').json()['count'] == 1


def test_unknown_pending_id_is_404(client):
    assert client.post('/api/pending/does-not-exist/approve').status_code == 404
    assert client.delete('/api/pending/does-not-exist').status_code == 404


def test_dismissed_message_stays_processed(client):
    pending = _ingest(client, SNB_SMS)['pending']
    r = client.delete(f"/api/pending/{pending['id']}")
    assert r.status_code == 200
    assert client.get('/api/pending').json()['count'] == 0
    assert _ingest(client, SNB_SMS)['status'] == 'duplicate'


def test_delete_transaction(client):
    pending = _ingest(client, SNB_SMS)['pending']
    tx = client.post(f"/api/pending/{pending['id']}/approve").json()['transaction']
    assert client.delete(f"/api/transactions/{tx['id']}").status_code == 200
    assert client.delete(f"/api/transactions/{tx['id']}").status_code == 404
    assert client.get('/api/transactions').json()['count'] == 0


def test_transactions_filter_validation(client):
    assert client.get('/api/transactions', params={'month': 13}).status_code == 422
    assert client.get('/api/transactions', params={'direction': 'sideways'}).status_code == 422


def test_edit_approved_transaction(client):
    pending = _ingest(client, SNB_SMS)['pending']
    tx = client.post(f"/api/pending/{pending['id']}/approve").json()['transaction']
    url = f"/api/transactions/{tx['id']}"

    r = client.patch(url, json={'category': 'Education', 'currency': 'usd'})
    assert r.status_code == 200
    edited = r.json()['transaction']
    assert edited['category'] == 'Education'
    assert edited['currency'] == 'USD'
    assert edited['amount'] == pytest.approx(1250.0)
    assert edited['content_hash'] == tx['content_hash']

    assert client.patch(url, json={'amount': -5}).status_code == 422
    assert client.patch(url, json={'category': 'Groceries'}).status_code == 422
    assert client.patch('/api/transactions/does-not-exist', json={'amount': 5}).status_code == 404
    assert client.get('/api/transactions').json()['transactions'][0]['category'] == 'Education'


def test_add_manual_transaction(client):
    r = client.post(
        '/api/transactions',
        json={'amount': 42.5, 'merchant': ' Corner Shop ', 'category': 'Food', 'approved_at': '2025-03-14T10:00:00+00:00'},
    )
    assert r.status_code == 200
    tx = r.json()['transaction']
    assert tx['merchant'] == 'Corner Shop'
    assert tx['currency'] == 'SAR'
    assert tx['direction'] == 'debit'
    assert tx['raw_text'] == 'Manual entry'
    assert tx['content_hash'] == f"manual_{tx['id']}"
    assert (tx['month'], tx['year']) == (3, 2025)

    listed = client.get('/api/transactions', params={'month': 3, 'year': 2025}).json()
    assert listed['count'] == 1


def test_add_manual_transaction_validates_fields(client):
    base = {'amount': 10, 'merchant': 'Shop', 'category': 'Food'}
    assert client.post('/api/transactions', json={**base, 'amount': 0}).status_code == 422
    assert client.post('/api/transactions', json={**base, 'category': 'Groceries'}).status_code == 422
    assert client.post('/api/transactions', json={**base, 'currency': 'ZZZ'}).status_code == 422
    assert client.post('/api/transactions', json={'amount': 10, 'category': 'Food'}).status_code == 422
    assert client.get('/api/transactions').json()['count'] == 0


def _manual(client, amount, category, day='2025-03-10T12:00:00+00:00'):
    body = {'amount': amount, 'merchant': 'Shop', 'category': category, 'approved_at': day}
    assert client.post('/api/transactions', json=body).status_code == 200


def test_budget_summary_counts_month_debits_per_category(client):
    food = client.post('/api/budgets', json={'category': 'Food', 'monthly_limit': 100, 'month': 3, 'year': 2025})
    assert food.status_code == 200
    client.post('/api/budgets', json={'category': 'Transport', 'monthly_limit': 50, 'month': 3, 'year': 2025})

    _manual(client, 30, 'Food')
    _manual(client, 45, 'Food')
    _manual(client, 80, 'Transport')
    _manual(client, 500, 'Food', day='2025-04-02T12:00:00+00:00')

    body = client.get('/api/budgets/summary', params={'month': 3, 'year': 2025}).json()
    by_category = {s['budget']['category']: s for s in body['summaries']}
    assert by_category['Food']['spent'] == pytest.approx(75.0)
    assert by_category['Food']['remaining'] == pytest.approx(25.0)
    assert by_category['Food']['percent'] == pytest.approx(0.75)
    assert by_category['Food']['is_over_budget'] is False
    assert by_category['Transport']['spent'] == pytest.approx(80.0)
    assert by_category['Transport']['remaining'] == pytest.approx(0.0)
    assert by_category['Transport']['percent'] == pytest.approx(1.0)
    assert by_category['Transport']['is_over_budget'] is True


def test_saving_budget_again_replaces_limit(client):
    first = client.post('/api/budgets', json={'category': 'Bills', 'monthly_limit': 200, 'month': 5, 'year': 2025}).json()
    second = client.post('/api/budgets', json={'category': 'Bills', 'monthly_limit': 250, 'month': 5, 'year': 2025}).json()
    assert first['budget']['id'] == second['budget']['id']

    listed = client.get('/api/budgets', params={'month': 5, 'year': 2025}).json()
    assert listed['count'] == 1
    assert listed['budgets'][0]['monthly_limit'] == pytest.approx(250.0)

    assert client.delete(f"/api/budgets/{first['budget']['id']}").status_code == 200
    assert client.delete(f"/api/budgets/{first['budget']['id']}").status_code == 404
    assert client.get('/api/budgets', params={'month': 5, 'year': 2025}).json()['count'] == 0


def test_budget_validation(client):
    assert client.post('/api/budgets', json={'category': 'Groceries', 'monthly_limit': 10, 'month': 1, 'year': 2025}).status_code == 422
    assert client.post('/api/budgets', json={'category': 'Food', 'monthly_limit': 0, 'month': 1, 'year': 2025}).status_code == 422
    assert client.post('/api/budgets', json={'category': 'Food', 'monthly_limit': 10, 'month': 13, 'year': 2025}).status_code == 422
    assert client.get('/api/budgets/summary', params={'month': 0, 'year': 2025}).status_code == 422
