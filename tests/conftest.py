"""
Pytest configuration and fixtures for the QC tracker test suite.
"""
import os
import tempfile

# Settings are read at import time; configure before importing the app.
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_FILE"] = ""
os.environ["STATIC_DIR"] = tempfile.mkdtemp(prefix="qc-static-")

import pytest
from fastapi import BackgroundTasks
from sqlmodel import Session, SQLModel

from app.core.alerts import AlertSink
from app.db.core import engine
from app.db.schema import User, UserRole, Product, Inspection
from app.services.defect import DefectService
from app.services.inspection import InspectionService
from app.services.stats import StatsService
from app.utils.file_storage import ImageStore, StoredImage


# ============================================================================
# Collaborator fakes
# ============================================================================

class RecordingAlertSink(AlertSink):
    """Keeps every alert it receives."""

    def __init__(self):
        self.critical = []
        self.rate = []

    def on_critical_defect(self, defect, inspection):
        self.critical.append((defect, inspection))

    def on_defect_rate_exceeded(self, inspection, rate, threshold):
        self.rate.append((inspection, rate, threshold))


class FakeImageStore(ImageStore):
    """In-memory store. Filenames containing 'broken' fail to store."""

    def __init__(self, fail_deletes=False):
        self.stored = {}
        self.deleted = []
        self.fail_deletes = fail_deletes

    def store(self, upload_file, folder):
        if "broken" in (upload_file.filename or ""):
            raise IOError("storage unavailable")
        public_id = f"{folder}/{len(self.stored) + 1}-{upload_file.filename}"
        self.stored[public_id] = upload_file.file.read()
        return StoredImage(url=f"https://cdn.test/{public_id}", public_id=public_id)

    def delete(self, public_id):
        if self.fail_deletes:
            raise IOError("storage unavailable")
        self.deleted.append(public_id)


def run_background_tasks(background_tasks: BackgroundTasks):
    """Runs queued tasks synchronously, the way Starlette would after the response."""
    for task in background_tasks.tasks:
        task.func(*task.args, **task.kwargs)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def database():
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(database):
    with Session(database) as session:
        yield session


def _user(session, email, name, role):
    user = User(email=email, name=name, role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin(session):
    return _user(session, "admin@qc.test", "Ada Admin", UserRole.ADMIN)


@pytest.fixture
def manager(session):
    return _user(session, "manager@qc.test", "Morgan Manager", UserRole.MANAGER)


@pytest.fixture
def inspector(session):
    return _user(session, "inspector@qc.test", "Ivan Inspector", UserRole.INSPECTOR)


@pytest.fixture
def other_inspector(session):
    return _user(session, "other@qc.test", "Olga Other", UserRole.INSPECTOR)


@pytest.fixture
def product(session):
    product = Product(name="Aluminium Housing A12", category="enclosures")
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture
def make_inspection(session, product, inspector):
    def factory(total_inspected=100, batch_number="B-001", owner=None):
        inspection = Inspection(
            product_id=product.id,
            inspector_id=(owner or inspector).id,
            batch_number=batch_number,
            total_inspected=total_inspected
        )
        session.add(inspection)
        session.commit()
        session.refresh(inspection)
        return inspection
    return factory


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def alert_sink():
    return RecordingAlertSink()


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
def background_tasks():
    return BackgroundTasks()


@pytest.fixture
def defect_service(session, alert_sink, image_store):
    return DefectService(session, alert_sink=alert_sink, image_store=image_store)


@pytest.fixture
def inspection_service(session, alert_sink, image_store):
    return InspectionService(session, alert_sink=alert_sink, image_store=image_store)


@pytest.fixture
def stats_service(session):
    return StatsService(session)


@pytest.fixture
def run_tasks():
    return run_background_tasks
