"""Allow ``python -m footprint_vectorizer``."""

import sys

from footprint_vectorizer.cli import main

sys.exit(main())
