# apps/backend/storyboard_app/logger.py
from rich.console import Console
from rich.traceback import install

# Pretty tracebacks for anything that escapes a router
install(show_locals=False)

# Shared console logger for the whole backend
console = Console(stderr=True)
