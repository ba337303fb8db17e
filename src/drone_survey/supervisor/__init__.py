from __future__ import annotations

from .supervisor import Amendment, Supervisor, Verdict  # noqa: F401
