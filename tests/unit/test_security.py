from __future__ import annotations

import pytest

from scenario_queue.core.security import cron_credentials_valid


@pytest.mark.parametrize(
  ("authorization", "x_cron_secret", "expected"),
  [
    ("Bearer cron-secret", None, True),
    ("bearer   cron-secret ", None, True),
    (None, "cron-secret", True),
    ("Bearer wrong", "cron-secret", True),
    ("Basic cron-secret", None, False),
    ("cron-secret", None, False),
    ("Bearer cron-secret-longer", None, False),
    (None, None, False),
    (None, "", False),
  ],
)
def test_cron_credentials(authorization: str | None, x_cron_secret: str | None, expected: bool) -> None:
  assert cron_credentials_valid("cron-secret", authorization=authorization, x_cron_secret=x_cron_secret) is expected
