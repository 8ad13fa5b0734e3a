"""
Tests for project start-up.

The test session has already populated the app registry, so loading is
checked in a fresh interpreter, the way manage.py and the ASGI server
start.
"""

import os
import subprocess
import sys

from django.conf import settings

STARTUP_SCRIPT = """
import django
django.setup()

from django.apps import apps
from django.core.management import call_command

assert apps.ready
call_command("check")

import config.asgi
"""


def run_in_fresh_interpreter(script):
    env = {
        **os.environ,
        "DJANGO_SETTINGS_MODULE": "config.settings",
        "PYTHONPATH": str(settings.BASE_DIR),
    }
    return subprocess.run(
        [sys.executable, "-c", script],
        cwd=settings.BASE_DIR,
        env=env,
        capture_output=True,
        text=True,
        timeout=120,
    )


class TestStartup:
    def test_django_setup_and_asgi_application_load(self):
        completed = run_in_fresh_interpreter(STARTUP_SCRIPT)

        assert completed.returncode == 0, completed.stderr

    def test_importing_core_does_not_load_drf_views(self):
        completed = run_in_fresh_interpreter(
            "import sys\n"
            "import core, core.exceptions\n"
            "assert 'rest_framework.views' not in sys.modules\n"
        )

        assert completed.returncode == 0, completed.stderr
