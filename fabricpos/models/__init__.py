# fabricpos/models/__init__.py

# 1. Declarative base
from fabricpos.database import Base

# 2. Users and workspaces
from .users import User, PasswordReset
from .organization import Organization, OrganizationMember, Invitation, MemberRole

# 3. Catalog and stock
from .products import Category, Product, ProductType, UNTRACKED_TYPES
from .inventory import InventoryMovement, MovementType

# 4. Customers
from .crm import Customer, CustomerMeasurement, Gender, MEASUREMENT_KEYS

# 5. Billing
from .sales import Bill, BillItem, Payment, BillStatus, PaymentStatus, PaymentMethod

# 6. Configuration
from .settings import Setting, SettingType
