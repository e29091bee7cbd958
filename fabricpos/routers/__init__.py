# fabricpos/routers/__init__.py

# Exposes the modules so "from fabricpos.routers import bills" works
from . import auth
from . import users
from . import workspaces
from . import categories
from . import products
from . import customers
from . import inventory
from . import bills
from . import barcodes
from . import settings
from . import reports
