"""Allow ``python -m chatlens``."""

from .app import main

raise SystemExit(main())
