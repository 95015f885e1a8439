import os

# Must be set before substitution_server.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUDIT_ENABLED"] = "false"

import pytest

from substitution_server.config import get_settings
from substitution_server.dto.models import SubstitutionColumn, SubstitutionSchedule


@pytest.fixture
def settings(tmp_path, monkeypatch):
    s = get_settings()
    monkeypatch.setattr(s, "TEMP_ROOT_DIR", str(tmp_path / "temp"))
    return s


def make_schedule(issue_date: int = 1738540800000, **classes) -> SubstitutionSchedule:
    """classes: name -> block_0 text, e.g. make_schedule(**{"7a": "Math cancelled"})"""
    return SubstitutionSchedule(
        pdf_issue_date=issue_date,
        entries={name: SubstitutionColumn.from_blocks([text]) for name, text in classes.items()},
        struct_time=1738560000000,
    )
