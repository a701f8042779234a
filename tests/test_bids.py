import unittest
from unittest import mock

from sqlalchemy import update

from models import db, Project, Bid
from services import bid_service
from tests.base import ApiTestCase


class BidApiTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.contractor = self.create_user('contractor')
        self.customer = self.create_user('customer')
        self.subcontractor = self.create_user('subcontractor')
        self.rival = self.create_user('subcontractor')
        self.project_id = self.create_project(self.contractor, customer=self.customer)

    def bid_payload(self, **overrides):
        payload = {
            'project_id': self.project_id,
            'amount': 15000,
            'timeline': 20,
            'description': 'Electrical rough-in and finish',
            'material_costs': 6000,
            'labor_costs': 9000,
            'start_date': '2025-07-01',
        }
        payload.update(overrides)
        return payload

    def test_subcontractor_submits_bid(self):
        response = self.client.post('/api/bids', json=self.bid_payload(), headers=self.subcontractor['headers'])
        self.assertEqual(201, response.status_code)
        bid = response.get_json()
        self.assertEqual('pending', bid['status'])
        self.assertEqual(self.subcontractor['id'], bid['bidder_id'])
        self.assertEqual(15000, bid['amount'])

    def test_bid_requires_open_project(self):
        draft_id = self.create_project(self.contractor, status='draft')
        response = self.client.post('/api/bids', json=self.bid_payload(project_id=draft_id),
                                    headers=self.subcontractor['headers'])
        self.assertEqual(400, response.status_code)
        self.assertEqual('Project is not open for bidding', response.get_json()['error'])

        response = self.client.post('/api/bids', json=self.bid_payload(project_id=9999),
                                    headers=self.subcontractor['headers'])
        self.assertEqual(404, response.status_code)

    def test_bid_validation(self):
        response = self.client.post('/api/bids', json=self.bid_payload(amount=-5),
                                    headers=self.subcontractor['headers'])
        self.assertEqual(400, response.status_code)
        self.assertEqual('amount', response.get_json()['details'][0]['field'])

        payload = self.bid_payload()
        del payload['labor_costs']
        response = self.client.post('/api/bids', json=payload, headers=self.subcontractor['headers'])
        self.assertEqual(400, response.status_code)

    def test_only_subcontractors_bid(self):
        response = self.client.post('/api/bids', json=self.bid_payload(), headers=self.contractor['headers'])
        self.assertEqual(403, response.status_code)

    def test_bid_list_is_filtered_by_role(self):
        own = self.create_bid(self.project_id, self.subcontractor)
        other = self.create_bid(self.project_id, self.rival)
        elsewhere = self.create_bid(self.create_project(self.create_user('contractor')), self.rival)

        def ids(user, query=''):
            response = self.client.get(f'/api/bids{query}', headers=user['headers'])
            self.assertEqual(200, response.status_code)
            return {bid['id'] for bid in response.get_json()}

        self.assertEqual({own}, ids(self.subcontractor))
        self.assertEqual({other, elsewhere}, ids(self.rival))
        self.assertEqual({other}, ids(self.rival, f'?project_id={self.project_id}'))
        self.assertEqual({own, other}, ids(self.contractor))
        self.assertEqual({own, other}, ids(self.customer))

        response = self.client.get('/api/bids?status=unknown', headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)

    def test_bidder_updates_own_pending_bid(self):
        bid_id = self.create_bid(self.project_id, self.subcontractor)

        response = self.client.put(f'/api/bids/{bid_id}', json={'amount': 11000},
                                   headers=self.rival['headers'])
        self.assertEqual(403, response.status_code)

        response = self.client.put(f'/api/bids/{bid_id}', json={'amount': 11000, 'timeline': 25},
                                   headers=self.subcontractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual(11000, response.get_json()['amount'])
        self.assertEqual(25, response.get_json()['timeline'])

    def test_cannot_update_decided_bid(self):
        bid_id = self.create_bid(self.project_id, self.subcontractor, status='rejected')
        response = self.client.put(f'/api/bids/{bid_id}', json={'amount': 11000},
                                   headers=self.subcontractor['headers'])
        self.assertEqual(400, response.status_code)
        self.assertEqual('Cannot update non-pending bid', response.get_json()['error'])

    def test_accept_bid_starts_project_and_rejects_competitors(self):
        winner = self.create_bid(self.project_id, self.subcontractor, amount=9000)
        loser = self.create_bid(self.project_id, self.rival, amount=12000)
        already_rejected = self.create_bid(self.project_id, self.create_user('subcontractor'), status='rejected')

        response = self.client.post(f'/api/bids/{winner}/accept', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        body = response.get_json()
        self.assertEqual('accepted', body['status'])
        self.assertEqual('in_progress', body['project']['status'])
        self.assertEqual([loser], body['rejected_bid_ids'])

        self.assertEqual('in_progress', self.fetch(Project, self.project_id)['status'])
        self.assertEqual('accepted', self.fetch(Bid, winner)['status'])
        self.assertEqual('rejected', self.fetch(Bid, loser)['status'])
        self.assertEqual('rejected', self.fetch(Bid, already_rejected)['status'])

    def test_second_acceptance_is_refused(self):
        first = self.create_bid(self.project_id, self.subcontractor)
        second = self.create_bid(self.project_id, self.rival)

        self.assertEqual(200, self.client.post(f'/api/bids/{first}/accept',
                                               headers=self.contractor['headers']).status_code)

        response = self.client.post(f'/api/bids/{second}/accept', headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)
        self.assertEqual('Project is not in bidding status', response.get_json()['error'])
        self.assertEqual('rejected', self.fetch(Bid, second)['status'])
        self.assertEqual('accepted', self.fetch(Bid, first)['status'])

    def test_failed_acceptance_changes_nothing(self):
        winner = self.create_bid(self.project_id, self.subcontractor)
        loser = self.create_bid(self.project_id, self.rival)

        with mock.patch.object(db.session, 'commit', side_effect=RuntimeError('database unavailable')):
            response = self.client.post(f'/api/bids/{winner}/accept', headers=self.contractor['headers'])
        self.assertEqual(500, response.status_code)

        self.assertEqual('bidding', self.fetch(Project, self.project_id)['status'])
        self.assertEqual('pending', self.fetch(Bid, winner)['status'])
        self.assertEqual('pending', self.fetch(Bid, loser)['status'])

        # The bid can still be accepted afterwards
        response = self.client.post(f'/api/bids/{winner}/accept', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)

    def test_acceptance_losing_the_status_race(self):
        winner = self.create_bid(self.project_id, self.subcontractor)
        loser = self.create_bid(self.project_id, self.rival)
        real_lock = bid_service._lock_project

        def lock_after_concurrent_start(project_id):
            project = real_lock(project_id)
            # Another acceptance moves the row on after our read
            db.session.execute(
                update(Project)
                .where(Project.id == project_id)
                .values(status='in_progress')
                .execution_options(synchronize_session=False)
            )
            return project

        with mock.patch.object(bid_service, '_lock_project', side_effect=lock_after_concurrent_start):
            response = self.client.post(f'/api/bids/{winner}/accept', headers=self.contractor['headers'])
        self.assertEqual(409, response.status_code)
        self.assertEqual('Project is no longer open for bidding', response.get_json()['error'])

        self.assertEqual('bidding', self.fetch(Project, self.project_id)['status'])
        self.assertEqual('pending', self.fetch(Bid, winner)['status'])
        self.assertEqual('pending', self.fetch(Bid, loser)['status'])

    def test_accept_requires_project_contractor(self):
        bid_id = self.create_bid(self.project_id, self.subcontractor)
        response = self.client.post(f'/api/bids/{bid_id}/accept',
                                    headers=self.create_user('contractor')['headers'])
        self.assertEqual(403, response.status_code)
        self.assertEqual('bidding', self.fetch(Project, self.project_id)['status'])
        self.assertEqual('pending', self.fetch(Bid, bid_id)['status'])

        response = self.client.post('/api/bids/9999/accept', headers=self.contractor['headers'])
        self.assertEqual(404, response.status_code)

    def test_accept_on_project_not_bidding(self):
        draft_id = self.create_project(self.contractor, status='draft')
        bid_id = self.create_bid(draft_id, self.subcontractor)
        response = self.client.post(f'/api/bids/{bid_id}/accept', headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)
        self.assertEqual('pending', self.fetch(Bid, bid_id)['status'])
        self.assertEqual('draft', self.fetch(Project, draft_id)['status'])

    def test_reject_bid_leaves_project_open(self):
        bid_id = self.create_bid(self.project_id, self.subcontractor)
        response = self.client.post(f'/api/bids/{bid_id}/reject', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual('rejected', response.get_json()['status'])
        self.assertEqual('bidding', self.fetch(Project, self.project_id)['status'])

        response = self.client.post(f'/api/bids/{bid_id}/reject', headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)

    def test_bid_detail_visibility(self):
        bid_id = self.create_bid(self.project_id, self.subcontractor)
        self.assertEqual(200, self.client.get(f'/api/bids/{bid_id}', headers=self.subcontractor['headers']).status_code)
        self.assertEqual(200, self.client.get(f'/api/bids/{bid_id}', headers=self.contractor['headers']).status_code)
        self.assertEqual(403, self.client.get(f'/api/bids/{bid_id}', headers=self.rival['headers']).status_code)


if __name__ == '__main__':
    unittest.main()
