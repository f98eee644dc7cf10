"""Allow ``python -m sdgscript``."""

from sdgscript.cli import main

raise SystemExit(main())
