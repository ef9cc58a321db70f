from __future__ import annotations

import sys

from .app import main as run


def main(argv: list[str] | None = None) -> int:
    return run(argv or sys.argv)


if __name__ == '__main__':
    raise SystemExit(main())
