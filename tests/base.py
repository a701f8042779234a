import shutil
import tempfile
import unittest

from app import create_app
from models import db, User, Project, Bid, Task, Material, Message, Dispute
from middleware.auth import generate_token

PASSWORD = 'Sup3rSecret1'


class ApiTestCase(unittest.TestCase):
    """
    Builds a fresh app (in-memory SQLite, temporary upload folder) per test.

    The app context is only pushed inside helpers so every test-client
    request resolves its own current_user.
    """

    def setUp(self):
        self.upload_dir = tempfile.mkdtemp()
        self.app = create_app('testing', {'UPLOAD_FOLDER': self.upload_dir})
        self.client = self.app.test_client()
        self._emails = 0

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
        shutil.rmtree(self.upload_dir, ignore_errors=True)

    # Factories return plain ids/dicts; ORM objects never leave the app context

    def create_user(self, role, email=None, **fields):
        self._emails += 1
        email = email or f"{role}{self._emails}@example.com"
        with self.app.app_context():
            user = User(
                email=email,
                role=role,
                first_name=fields.pop('first_name', role.title()),
                last_name=fields.pop('last_name', str(self._emails)),
                **fields
            )
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.commit()
            token = generate_token(user)
            return {
                'id': user.id,
                'email': email,
                'token': token,
                'headers': {'Authorization': f'Bearer {token}'}
            }

    def create_project(self, contractor, status='bidding', customer=None, **fields):
        with self.app.app_context():
            project = Project(
                title=fields.pop('title', 'Garage build'),
                description=fields.pop('description', 'Two-car detached garage'),
                budget=fields.pop('budget', 50000),
                location=fields.pop('location', 'Laval, QC'),
                status=status,
                contractor_id=contractor['id'],
                customer_id=customer['id'] if customer else None,
                **fields
            )
            db.session.add(project)
            db.session.commit()
            return project.id

    def create_bid(self, project_id, bidder, amount=10000, status='pending'):
        with self.app.app_context():
            bid = Bid(
                project_id=project_id,
                bidder_id=bidder['id'],
                amount=amount,
                timeline=30,
                description='Framing and roofing',
                material_costs=amount * 0.4,
                labor_costs=amount * 0.6,
                status=status
            )
            db.session.add(bid)
            db.session.commit()
            return bid.id

    def create_task(self, project_id, assignee=None, status='pending', **fields):
        with self.app.app_context():
            task = Task(
                project_id=project_id,
                title=fields.pop('title', 'Pour foundation'),
                assigned_to=assignee['id'] if assignee else None,
                status=status,
                progress=100 if status == 'completed' else 0,
                **fields
            )
            db.session.add(task)
            db.session.commit()
            return task.id

    def create_material(self, vendor, stock_level=50, min_stock_level=10, **fields):
        with self.app.app_context():
            material = Material(
                vendor_id=vendor['id'],
                name=fields.pop('name', 'Drywall sheet'),
                category=fields.pop('category', 'drywall'),
                price=fields.pop('price', 12.5),
                unit=fields.pop('unit', 'sheet'),
                min_stock_level=min_stock_level,
                **fields
            )
            material.apply_stock_level(stock_level)
            db.session.add(material)
            db.session.commit()
            return material.id

    def create_message(self, sender, receiver, content='Hello', project_id=None, read=False):
        with self.app.app_context():
            message = Message(
                sender_id=sender['id'],
                receiver_id=receiver['id'],
                project_id=project_id,
                content=content,
                read=read
            )
            db.session.add(message)
            db.session.commit()
            return message.id

    def create_dispute(self, project_id, raised_by, against, status='open'):
        with self.app.app_context():
            dispute = Dispute(
                project_id=project_id,
                raised_by_id=raised_by['id'],
                against_id=against['id'],
                reason='Work not finished on schedule',
                status=status
            )
            db.session.add(dispute)
            db.session.commit()
            return dispute.id

    def fetch(self, model, entity_id):
        """Current database state of an entity as its to_dict()"""
        with self.app.app_context():
            entity = db.session.get(model, entity_id)
            return entity.to_dict() if entity is not None else None
