from __future__ import annotations

from .shell_cli import main

if __name__ == "__main__":
    main()
