"""
Remote log sink (Better Stack style HTTP ingestion) with console fallback.
"""

import sys
from datetime import datetime, timezone
from typing import Optional

import requests

from emr.config import LOG_LEVELS, LOG_SINK_TIMEOUT, LOG_SINK_TOKEN, LOG_SINK_URL


class LogSink:
    """
    Ships ``{dt, message, level}`` records to an HTTP log endpoint.

    Delivery problems never propagate: they are reported on stderr and
    ``log`` returns False. Every message is echoed to stderr as well.
    """

    def __init__(self, url: Optional[str] = None, token: str = "",
                 timeout: float = LOG_SINK_TIMEOUT, http=None):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.http = http or requests.Session()

    def log(self, message: str, level: str = "debug") -> bool:
        if level not in LOG_LEVELS:
            level = "info"

        print(f"[log:{level}] {message}", file=sys.stderr)

        if not self.url:
            return False

        record = {
            "dt": datetime.now(timezone.utc).isoformat(),
            "message": message,
            "level": level,
        }
        try:
            resp = self.http.post(
                self.url,
                json=record,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            print(f"[WARN] Error sending log to sink: {e}", file=sys.stderr)
            return False

        if not resp.ok:
            print(
                f"[WARN] Failed to send log to sink: {resp.status_code} {resp.reason}",
                file=sys.stderr,
            )
            return False
        return True


def init_log_sink() -> LogSink:
    """Build the sink from configuration."""
    if LOG_SINK_URL:
        print(f"[init] Remote log sink: {LOG_SINK_URL}")
    else:
        print("[init] LOG_SINK_URL not set – logging to console only")
    return LogSink(url=LOG_SINK_URL, token=LOG_SINK_TOKEN)
