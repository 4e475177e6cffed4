# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process unless DATABASE_URL says otherwise
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///backoffice.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Deployment-wide prefix placed in front of every document number
    # (e.g. "S01-" gives "S01-VTA-00000001").
    DOCUMENT_NUMBER_PREFIX = os.environ.get("DOCUMENT_NUMBER_PREFIX", "")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Accounts-receivable paging
    AR_DEFAULT_PAGE_SIZE = int(os.environ.get("AR_DEFAULT_PAGE_SIZE", "25"))
    AR_MAX_PAGE_SIZE = int(os.environ.get("AR_MAX_PAGE_SIZE", "200"))
