# This file tells Python that the 'routes' directory is a package.
# It can also be used to gather all routers for easier import in main.py.

from . import forms
from . import health
