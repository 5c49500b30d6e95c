"""Allow ``python -m perf_engine``."""

from perf_engine.cli import main

raise SystemExit(main())
