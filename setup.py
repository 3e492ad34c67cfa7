"""Package and py2app build configuration.

Install for development:
    pip install -e ".[test]"

Build a standalone .app bundle:
    python setup.py py2app
"""

import re
import sys

from setuptools import find_packages, setup

# Read version from source to avoid import side effects at build time
_version_re = re.compile(r'__version__\s*=\s*"([^"]+)"')
with open("src/pace_bar/__init__.py") as f:
    _match = _version_re.search(f.read())
    VERSION = _match.group(1) if _match else "0.0.0"

APP = ["src/pace_bar/__main__.py"]
OPTIONS = {
    "argv_emulation": False,
    "plist": {
        "LSUIElement": True,  # no dock icon
        "CFBundleIdentifier": "io.github.pace-bar",
        "CFBundleName": "Pace Bar",
        "CFBundleShortVersionString": VERSION,
    },
    "packages": ["rumps", "pace_bar"],
}

# py2app is macOS-only; only pull it in when actually building the bundle.
py2app_kwargs = {}
if "py2app" in sys.argv:
    py2app_kwargs = {
        "app": APP,
        "options": {"py2app": OPTIONS},
        "setup_requires": ["py2app"],
    }

setup(
    name="pace-bar",
    version=VERSION,
    description="macOS menu bar monitor for Claude usage limits and pacing",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.10",
    install_requires=[
        # _menuitem / _nsapp private APIs are used; pinned to rumps <0.5
        'rumps>=0.4,<0.5; sys_platform == "darwin"',
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["pace-bar = pace_bar.app:main"]},
    **py2app_kwargs,
)
