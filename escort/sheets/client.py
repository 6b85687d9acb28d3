# escort/sheets/client.py

from __future__ import annotations

import logging
import os
import pickle
from typing import Any

import gspread
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import InstalledAppFlow

from escort.config import AppConfig

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def _client_from_oauth(credentials_path: str) -> gspread.Client:
    """Use OAuth Desktop App flow"""
    creds = None
    token_path = os.path.join(os.path.dirname(credentials_path), "token.pickle")

    # Load existing token if it exists
    if os.path.exists(token_path):
        with open(token_path, "rb") as token:
            creds = pickle.load(token)

    # If no valid credentials, let user log in
    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            flow = InstalledAppFlow.from_client_secrets_file(credentials_path, SCOPES)
            creds = flow.run_local_server(port=0)

        # Save the credentials for next run
        with open(token_path, "wb") as token:
            pickle.dump(creds, token)

    return gspread.authorize(creds)


def _client_from_service_account(credentials_path: str) -> gspread.Client:
    return gspread.service_account(filename=credentials_path, scopes=SCOPES)


def open_workbook(cfg: AppConfig) -> Any:
    """
    Returns an object with `.worksheet(title)` and `.add_worksheet(...)`:
    a gspread Spreadsheet, or a MemoryWorkbook when `cfg.backend == "memory"`.
    """
    if cfg.backend == "memory":
        from escort.sheets.memory import MemoryWorkbook

        logger.info("Using in-memory workbook seeded from %s", cfg.seed_path)
        return MemoryWorkbook.from_yaml(cfg.seed_path)

    if cfg.auth_mode == "oauth":
        gc = _client_from_oauth(cfg.credentials_path)
    else:
        gc = _client_from_service_account(cfg.credentials_path)
    logger.info("Opening spreadsheet %s", cfg.spreadsheet_id)
    return gc.open_by_key(cfg.spreadsheet_id)
