import io
from datetime import datetime
import unittest

from models import Project, Task
from tests.base import ApiTestCase


class TaskApiTestCase(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.contractor = self.create_user('contractor')
        self.customer = self.create_user('customer')
        self.worker = self.create_user('subcontractor')
        self.project_id = self.create_project(self.contractor, status='in_progress', customer=self.customer)

    def test_contractor_creates_task(self):
        response = self.client.post('/api/tasks', json={
            'project_id': self.project_id,
            'title': 'Install windows',
            'priority': 'high',
            'due_date': '2025-09-15',
            'assigned_to': self.worker['id'],
        }, headers=self.contractor['headers'])
        self.assertEqual(201, response.status_code)
        task = response.get_json()
        self.assertEqual('pending', task['status'])
        self.assertEqual(0, task['progress'])
        self.assertEqual(self.worker['id'], task['assigned_to'])
        self.assertTrue(task['due_date'].startswith('2025-09-15'))

    def test_create_task_checks(self):
        other_contractor = self.create_user('contractor')
        response = self.client.post('/api/tasks', json={'project_id': self.project_id, 'title': 'Paint'},
                                    headers=other_contractor['headers'])
        self.assertEqual(403, response.status_code)

        response = self.client.post('/api/tasks', json={'project_id': self.project_id, 'title': 'Paint',
                                                        'assigned_to': 9999},
                                    headers=self.contractor['headers'])
        self.assertEqual(404, response.status_code)
        self.assertEqual('Assignee not found', response.get_json()['error'])

        response = self.client.post('/api/tasks', json={'project_id': self.project_id, 'title': 'Paint',
                                                        'priority': 'urgent'},
                                    headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)

    def test_dependencies_must_share_project(self):
        foreign_task = self.create_task(self.create_project(self.contractor))
        response = self.client.post('/api/tasks', json={
            'project_id': self.project_id,
            'title': 'Drywall',
            'dependencies': [foreign_task],
        }, headers=self.contractor['headers'])
        self.assertEqual(400, response.status_code)

        framing = self.create_task(self.project_id, title='Framing')
        response = self.client.post('/api/tasks', json={
            'project_id': self.project_id,
            'title': 'Drywall',
            'dependencies': [framing],
        }, headers=self.contractor['headers'])
        self.assertEqual(201, response.status_code)
        self.assertEqual([framing], response.get_json()['dependencies'])

    def test_task_list_ordering(self):
        undated = self.create_task(self.project_id, title='Cleanup', priority='high')
        late = self.create_task(self.project_id, title='Roof', due_date=datetime(2025, 10, 1), priority='low')
        early_low = self.create_task(self.project_id, title='Permit', due_date=datetime(2025, 8, 1), priority='low')
        early_high = self.create_task(self.project_id, title='Survey', due_date=datetime(2025, 8, 1), priority='high')

        response = self.client.get('/api/tasks', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual([early_high, early_low, late, undated], [task['id'] for task in response.get_json()])

    def test_subcontractor_lists_assigned_tasks(self):
        mine = self.create_task(self.project_id, assignee=self.worker)
        self.create_task(self.project_id)

        response = self.client.get('/api/tasks', headers=self.worker['headers'])
        self.assertEqual([mine], [task['id'] for task in response.get_json()])

        response = self.client.get('/api/tasks?project_id=abc', headers=self.worker['headers'])
        self.assertEqual(400, response.status_code)

    def test_progress_reaching_100_completes_task(self):
        task_id = self.create_task(self.project_id, assignee=self.worker)
        self.create_task(self.project_id)

        response = self.client.patch(f'/api/tasks/{task_id}/progress', json={'progress': 40},
                                     headers=self.worker['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual('in_progress', response.get_json()['status'])
        self.assertIsNone(response.get_json()['completed_at'])

        response = self.client.patch(f'/api/tasks/{task_id}/progress', json={'progress': 100},
                                     headers=self.worker['headers'])
        task = response.get_json()
        self.assertEqual('completed', task['status'])
        self.assertIsNotNone(task['completed_at'])
        # Another task is still open
        self.assertEqual('in_progress', self.fetch(Project, self.project_id)['status'])

    def test_progress_validation_and_permissions(self):
        task_id = self.create_task(self.project_id, assignee=self.worker)

        for bad in (101, -1, 'half'):
            response = self.client.patch(f'/api/tasks/{task_id}/progress', json={'progress': bad},
                                         headers=self.worker['headers'])
            self.assertEqual(400, response.status_code)
        self.assertEqual(0, self.fetch(Task, task_id)['progress'])

        response = self.client.patch(f'/api/tasks/{task_id}/progress', json={'progress': 50},
                                     headers=self.contractor['headers'])
        self.assertEqual(403, response.status_code)

    def test_completing_last_task_completes_project(self):
        self.create_task(self.project_id, status='completed')
        task_id = self.create_task(self.project_id, assignee=self.worker)

        response = self.client.put(f'/api/tasks/{task_id}', json={'status': 'completed'},
                                   headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual(100, response.get_json()['progress'])
        self.assertEqual('completed', self.fetch(Project, self.project_id)['status'])

    def test_reopening_task_clears_completed_at(self):
        task_id = self.create_task(self.project_id, assignee=self.worker)
        self.client.put(f'/api/tasks/{task_id}', json={'status': 'completed'}, headers=self.contractor['headers'])

        response = self.client.put(f'/api/tasks/{task_id}', json={'status': 'in_progress'},
                                   headers=self.worker['headers'])
        self.assertEqual(200, response.status_code)
        self.assertIsNone(response.get_json()['completed_at'])

    def test_reopening_task_resets_progress(self):
        task_id = self.create_task(self.project_id, assignee=self.worker)
        self.create_task(self.project_id)
        self.client.patch(f'/api/tasks/{task_id}/progress', json={'progress': 100}, headers=self.worker['headers'])
        self.assertEqual('completed', self.fetch(Task, task_id)['status'])

        response = self.client.put(f'/api/tasks/{task_id}', json={'status': 'pending'},
                                   headers=self.worker['headers'])
        self.assertEqual(200, response.status_code)
        task = response.get_json()
        self.assertEqual('pending', task['status'])
        self.assertEqual(0, task['progress'])
        self.assertIsNone(task['completed_at'])

        self.client.put(f'/api/tasks/{task_id}', json={'status': 'completed'}, headers=self.worker['headers'])
        response = self.client.put(f'/api/tasks/{task_id}', json={'status': 'in_progress'},
                                   headers=self.worker['headers'])
        task = response.get_json()
        self.assertEqual('in_progress', task['status'])
        self.assertEqual(99, task['progress'])
        self.assertIsNone(task['completed_at'])

        # Reporting 100 again completes it again
        response = self.client.patch(f'/api/tasks/{task_id}/progress', json={'progress': 100},
                                     headers=self.worker['headers'])
        task = response.get_json()
        self.assertEqual('completed', task['status'])
        self.assertIsNotNone(task['completed_at'])

    def test_assignee_edits_are_limited(self):
        task_id = self.create_task(self.project_id, assignee=self.worker, title='Framing')
        other_worker = self.create_user('subcontractor')

        for change in ({'assigned_to': other_worker['id']}, {'title': 'Renamed'}, {'dependencies': []},
                       {'status': 'blocked', 'priority': 'high'}):
            response = self.client.put(f'/api/tasks/{task_id}', json=change, headers=self.worker['headers'])
            self.assertEqual(403, response.status_code)

        task = self.fetch(Task, task_id)
        self.assertEqual(self.worker['id'], task['assigned_to'])
        self.assertEqual('Framing', task['title'])
        self.assertEqual('pending', task['status'])

        response = self.client.put(f'/api/tasks/{task_id}', json={
            'status': 'in_progress', 'description': 'Studs delivered'
        }, headers=self.worker['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual('Studs delivered', response.get_json()['description'])

        response = self.client.put(f'/api/tasks/{task_id}', json={'assigned_to': other_worker['id']},
                                   headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual(other_worker['id'], response.get_json()['assigned_to'])

    def test_deleting_task_prunes_dependencies(self):
        framing = self.create_task(self.project_id, title='Framing')
        survey = self.create_task(self.project_id, title='Survey')
        drywall = self.create_task(self.project_id, title='Drywall', dependencies=[framing, survey])

        response = self.client.delete(f'/api/tasks/{framing}', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertEqual([survey], self.fetch(Task, drywall)['dependencies'])

        response = self.client.put(f'/api/tasks/{drywall}', json={'title': 'Drywall and tape'},
                                   headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)

    def test_update_and_delete_permissions(self):
        task_id = self.create_task(self.project_id, assignee=self.worker)
        outsider = self.create_user('subcontractor')

        response = self.client.put(f'/api/tasks/{task_id}', json={'title': 'Nope'}, headers=outsider['headers'])
        self.assertEqual(403, response.status_code)
        response = self.client.get(f'/api/tasks/{task_id}', headers=outsider['headers'])
        self.assertEqual(403, response.status_code)

        response = self.client.delete(f'/api/tasks/{task_id}', headers=self.worker['headers'])
        self.assertEqual(403, response.status_code)

        response = self.client.delete(f'/api/tasks/{task_id}', headers=self.contractor['headers'])
        self.assertEqual(200, response.status_code)
        self.assertIsNone(self.fetch(Task, task_id))

    def test_upload_attachments(self):
        task_id = self.create_task(self.project_id, assignee=self.worker)
        response = self.client.post(
            f'/api/tasks/{task_id}/attachments',
            data={'attachments': [(io.BytesIO(b'site notes'), 'notes.txt'),
                                  (io.BytesIO(b'%PDF-1.4'), 'plan.pdf')]},
            content_type='multipart/form-data',
            headers=self.worker['headers']
        )
        self.assertEqual(200, response.status_code)
        attachments = response.get_json()['attachments']
        self.assertEqual(2, len(attachments))
        self.assertTrue(all(url.startswith(f'/uploads/tasks/task-{task_id}-') for url in attachments))

        response = self.client.post(
            f'/api/tasks/{task_id}/attachments',
            data={'attachments': [(io.BytesIO(b'MZ'), 'virus.exe')]},
            content_type='multipart/form-data',
            headers=self.worker['headers']
        )
        self.assertEqual(400, response.status_code)
        self.assertEqual(2, len(self.fetch(Task, task_id)['attachments']))


if __name__ == '__main__':
    unittest.main()
