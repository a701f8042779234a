import io
import os
import unittest
from unittest import mock

from models import db, Message
from tests.base import ApiTestCase


class MessageApiTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.contractor = self.create_user('contractor')
        self.customer = self.create_user('customer')
        self.outsider = self.create_user('subcontractor')
        self.project_id = self.create_project(self.contractor, status='in_progress', customer=self.customer)

    def test_send_direct_message(self):
        response = self.client.post('/api/messages', json={
            'receiver_id': self.outsider['id'],
            'content': 'Are you available next week?'
        }, headers=self.contractor['headers'])
        self.assertEqual(201, response.status_code)
        message = response.get_json()
        self.assertEqual('text', message['type'])
        self.assertFalse(message['read'])
        self.assertIsNone(message['project_id'])

    def test_send_message_validation(self):
        response = self.client.post('/api/messages', json={'receiver_id': self.customer['id'], 'content': '  '},
                                    headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)

        response = self.client.post('/api/messages', json={'receiver_id': 9999, 'content': 'Hi'},
                                    headers=self.contractor['headers'])
        self.assertEqual(404, response.status_code)

        response = self.client.post('/api/messages', json={'content': 'Hi'}, headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)

    def test_project_messages_require_participants(self):
        response = self.client.post('/api/messages', json={
            'receiver_id': self.customer['id'], 'project_id': self.project_id, 'content': 'Framing done'
        }, headers=self.contractor['headers'])
        self.assertEqual(201, response.status_code)

        response = self.client.post('/api/messages', json={
            'receiver_id': self.customer['id'], 'project_id': self.project_id, 'content': 'Hello'
        }, headers=self.outsider['headers'])
        self.assertEqual(403, response.status_code)
        self.assertEqual('You are not involved in this project', response.get_json()['error'])

        response = self.client.post('/api/messages', json={
            'receiver_id': self.outsider['id'], 'project_id': self.project_id, 'content': 'Hello'
        }, headers=self.contractor['headers'])
        self.assertEqual(403, response.status_code)
        self.assertEqual('Receiver is not involved in the project', response.get_json()['error'])

    def test_send_message_with_attachment(self):
        response = self.client.post('/api/messages', data={
            'receiver_id': str(self.customer['id']),
            'attachment': (io.BytesIO(b'%PDF-1.4 change order'), 'change-order.pdf'),
        }, content_type='multipart/form-data', headers=self.contractor['headers'])
        self.assertEqual(201, response.status_code)
        message = response.get_json()
        self.assertEqual('file', message['type'])
        self.assertEqual('change-order.pdf', message['content'])
        self.assertTrue(message['attachment_url'].startswith('/uploads/messages/message-'))

    def test_failed_send_removes_saved_attachment(self):
        with mock.patch.object(db.session, 'commit', side_effect=RuntimeError('database unavailable')):
            response = self.client.post('/api/messages', data={
                'receiver_id': str(self.customer['id']),
                'attachment': (io.BytesIO(b'%PDF-1.4 change order'), 'change-order.pdf'),
            }, content_type='multipart/form-data', headers=self.contractor['headers'])
        self.assertEqual(500, response.status_code)

        stored = os.path.join(self.upload_dir, 'messages')
        self.assertEqual([], os.listdir(stored) if os.path.isdir(stored) else [])

    def test_conversation_and_project_filters(self):
        first = self.create_message(self.contractor, self.customer, 'Kickoff', project_id=self.project_id)
        second = self.create_message(self.customer, self.contractor, 'Thanks')
        self.create_message(self.outsider, self.customer, 'Unrelated')

        response = self.client.get(f"/api/messages?user_id={self.customer['id']}", headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual([second, first], [message['id'] for message in response.get_json()])

        response = self.client.get(f'/api/messages?project_id={self.project_id}', headers=self.contractor['headers'])
        self.assertEqual([first], [message['id'] for message in response.get_json()])

        response = self.client.get(f'/api/messages?project_id={self.project_id}', headers=self.outsider['headers'])
        self.assertEqual(403, response.status_code)

        response = self.client.get('/api/messages?limit=1', headers=self.contractor['headers'])
        self.assertEqual(1, len(response.get_json()))

        response = self.client.get('/api/messages', headers=self.outsider['headers'])
        self.assertEqual(['Unrelated'], [message['content'] for message in response.get_json()])

    def test_unread_count_and_mark_as_read(self):
        first = self.create_message(self.contractor, self.customer, 'One')
        second = self.create_message(self.contractor, self.customer, 'Two')
        sent = self.create_message(self.customer, self.contractor, 'Three')

        response = self.client.get('/api/messages/unread', headers=self.customer['headers'])
        self.assertEqual({'unread_count': 2}, response.get_json())

        response = self.client.post('/api/messages/read', json={'message_ids': [first, sent]},
                                    headers=self.customer['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual(1, response.get_json()['updated'])

        self.assertTrue(self.fetch(Message, first)['read'])
        self.assertIsNotNone(self.fetch(Message, first)['read_at'])
        self.assertFalse(self.fetch(Message, second)['read'])
        # Only the receiver can mark a message as read
        self.assertFalse(self.fetch(Message, sent)['read'])

        response = self.client.post('/api/messages/read', json={'message_ids': 'all'},
                                    headers=self.customer['headers'])
        self.assertEqual(400, response.status_code)

    def test_conversations_group_by_counterpart(self):
        self.create_message(self.contractor, self.customer, 'Old question')
        self.create_message(self.customer, self.contractor, 'Latest answer')
        self.create_message(self.outsider, self.contractor, 'Quote attached')

        response = self.client.get('/api/messages/conversations', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        conversations = response.get_json()
        self.assertEqual([self.outsider['id'], self.customer['id']],
                         [conversation['user']['id'] for conversation in conversations])
        self.assertEqual('Quote attached', conversations[0]['last_message'])
        self.assertEqual(1, conversations[0]['unread_count'])
        self.assertEqual('Latest answer', conversations[1]['last_message'])
        self.assertEqual(1, conversations[1]['unread_count'])


if __name__ == '__main__':
    unittest.main()
