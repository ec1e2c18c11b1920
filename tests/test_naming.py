import datetime

import pytest

from pgmanager.errors import InvalidEnv, InvalidFormat, InvalidName, InvalidPRNumber
from pgmanager.services import naming


@pytest.mark.parametrize("name", ["ab", "myapp", "my_app123", "my_app_2", "a" * 32])
def test_valid_project_names(name):
    naming.validate_project_name(name)


@pytest.mark.parametrize(
    "name",
    ["a", "a" * 33, "a" * 45, "1app", "123app", "_app", "MyApp", "my-app", "my app", "", "postgres", "template1", "admin"],
)
def test_invalid_project_names(name):
    with pytest.raises(InvalidName):
        naming.validate_project_name(name)


def test_reserved_name_message():
    with pytest.raises(InvalidName, match="reserved"):
        naming.validate_project_name("root")


@pytest.mark.parametrize("env", ["prod", "dev", "staging", "pr"])
def test_valid_envs(env):
    naming.validate_env(env)


@pytest.mark.parametrize("env", ["production", "PROD", "", "test"])
def test_invalid_envs(env):
    with pytest.raises(InvalidEnv):
        naming.validate_env(env)


@pytest.mark.parametrize("number", [0, -1, 1_000_001])
def test_pr_number_out_of_range(number):
    with pytest.raises(InvalidPRNumber):
        naming.validate_pr_number(number)


def test_pr_number_bounds_inclusive():
    naming.validate_pr_number(1)
    naming.validate_pr_number(naming.MAX_PR_NUMBER)


def test_database_and_user_names():
    assert naming.database_name("myapp", "prod") == "myapp_prod"
    assert naming.database_name("myapp", "pr", 123) == "myapp_pr_123"
    assert naming.user_name("myapp_pr_123") == "myapp_pr_123_user"


def test_database_name_is_deterministic():
    assert naming.database_name("shop", "staging") == naming.database_name("shop", "staging")


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("pr_123", ("pr", 123)),
        ("pr_1", ("pr", 1)),
        ("dev", ("dev", None)),
        ("prod", ("prod", None)),
        ("staging", ("staging", None)),
    ],
)
def test_parse_env_token(token, expected):
    assert naming.parse_env_token(token) == expected


@pytest.mark.parametrize("token", ["pr_abc", "pr_", "pr_-1", "pr_0", "pr_1x", "pr_ 1"])
def test_parse_env_token_rejects_bad_pr_suffix(token):
    with pytest.raises(InvalidFormat):
        naming.parse_env_token(token)


def test_parse_env_token_rejects_unknown_env():
    with pytest.raises(InvalidEnv):
        naming.parse_env_token("qa")


def test_env_token_inverts_parse():
    assert naming.env_token("pr", 42) == "pr_42"
    assert naming.env_token("dev", None) == "dev"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("30s", datetime.timedelta(seconds=30)),
        ("15m", datetime.timedelta(minutes=15)),
        ("24h", datetime.timedelta(hours=24)),
        ("7d", datetime.timedelta(days=7)),
        ("2w", datetime.timedelta(weeks=2)),
        ("168h", datetime.timedelta(days=7)),
    ],
)
def test_parse_duration(text, expected):
    assert naming.parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "7", "d", "7y", "-1d", "1.5h", "7 days"])
def test_parse_duration_rejects(text):
    with pytest.raises(InvalidFormat):
        naming.parse_duration(text)
