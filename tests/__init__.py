"""Test package for the Reminder Mailer application.

Covers the reminder store and its retry wrapper, time conversion, the
submission and sweep handlers, email delivery, security, configuration,
health checks, the HTTP API and the CLI.
"""

import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
