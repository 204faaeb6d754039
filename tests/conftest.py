from pathlib import Path

import pytest

FIXED_TIMESTAMP = "2026-01-01T00:00:00Z"

UNIFIED_CSV = "\n".join(
    [
        "Username,Password,SSH_Public_Key,Server access,,",
        ",,,Web,DB,Backup",
        ",,,PRIVATE_10.0.0.5,PRIVATE_10.0.0.6,PRIVATE_10.0.0.7",
        '"User carol",Secret3,"ssh-ed25519 AAAAkeyC carol@laptop",TRUE,FALSE,yes',
        "User dave,Secret4,,TRUE,1,",
        "User erin,Secret5,keyE,TRUE,,",
        "",
        "Totals,,,3,1,1",
    ]
)

LEGACY_CSV = "Username,Password,SSH_Public_Key\nalice,Secret1,keyA\nbob,Secret2,\n"


@pytest.fixture
def unified_csv(tmp_path) -> Path:
    path = Path(tmp_path) / "raw_user_list_v2.csv"
    path.write_text(UNIFIED_CSV + "\n", encoding="utf-8")
    return path


@pytest.fixture
def legacy_csv(tmp_path) -> Path:
    path = Path(tmp_path) / "full_user_list.csv"
    path.write_text(LEGACY_CSV, encoding="utf-8")
    return path


@pytest.fixture
def generated_at() -> str:
    return FIXED_TIMESTAMP
