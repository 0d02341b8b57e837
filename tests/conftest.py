import io

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from openpyxl import Workbook
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from api.models import User
from api.parsers import CSV_MIMETYPE, XLSX_MIMETYPE
from excelanalytics.celery import app as celery_app

SALES_ROWS = [["Month", "Sales"], ["Jan", 100], ["Feb", 200]]


def make_xlsx(sheets):
    """Build an .xlsx file in memory from [(sheet name, rows), ...]."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets:
        sheet = workbook.create_sheet(name)
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def xlsx_upload(sheets=None, name="sales.xlsx"):
    content = make_xlsx(sheets if sheets is not None else [("Sheet1", SALES_ROWS)])
    return SimpleUploadedFile(name, content, content_type=XLSX_MIMETYPE)


def csv_upload(text, name="sales.csv"):
    return SimpleUploadedFile(name, text.encode("utf-8"), content_type=CSV_MIMETYPE)


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / "media"
    return settings.MEDIA_ROOT


@pytest.fixture(autouse=True)
def eager_celery():
    celery_app.conf.update(task_always_eager=True, task_eager_propagates=False)


@pytest.fixture
def make_user(db):
    def _make_user(email="ana@example.com", role=User.Role.USER, **extra):
        return User.objects.create_user(
            username=email,
            email=email,
            password="secret123",
            name=extra.pop("name", email.split("@")[0].title()),
            role=role,
            **extra,
        )

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@example.com", role=User.Role.ADMIN)


def client_for(user):
    client = APIClient()
    token, _ = Token.objects.get_or_create(user=user)
    client.credentials(HTTP_AUTHORIZATION=f"Token {token.key}")
    return client


@pytest.fixture
def api_client(user):
    return client_for(user)


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)
