"""Module entrypoint.

Allows:
    python -m medlog_timeline
"""

from __future__ import annotations

from medlog_timeline.server.timeline_server import main

if __name__ == "__main__":
    main()
