"""Seed a demo shop: an owner, one workspace, categories, products and a customer.

    python init_db.py
"""
from decimal import Decimal

from fabricpos.crud import organizations, products, users
from fabricpos.database import SessionLocal, engine
from fabricpos.models import Base, Category, Customer, CustomerMeasurement, Organization, Product, ProductType
from fabricpos.schemas.products import ProductCreate

DEMO_EMAIL = "owner@fabricpos.in"
DEMO_PASSWORD = "Owner@1234"

CATEGORIES = [
    ("Fabrics", "Suiting, shirting and dress material sold by the metre"),
    ("Ready Made", "Shirts, trousers and kurtas"),
    ("Accessories", "Buttons, ties and belts"),
    ("Tailoring", "Stitching services"),
]

# name, sku, category, type, unit, price, cost, opening stock, min stock
PRODUCTS = [
    ("Cotton Shirting - White", "FAB-COT-WHT", "Fabrics", ProductType.FABRIC, "m", "180.00", "120.00", "120", "20"),
    ("Linen Suiting - Beige", "FAB-LIN-BEI", "Fabrics", ProductType.FABRIC, "m", "650.00", "430.00", "45", "10"),
    ("Formal Shirt - Blue", "RM-SHIRT-BLU", "Ready Made", ProductType.READY_MADE, "pcs", "1299.00", "800.00", "25", "5"),
    ("Silk Tie - Maroon", "ACC-TIE-MAR", "Accessories", ProductType.ACCESSORY, "pcs", "499.00", "250.00", "3", "5"),
    ("Shirt Stitching", "SRV-SHIRT", "Tailoring", ProductType.TAILORING_SERVICE, "pcs", "450.00", None, "0", "0"),
]


def init_db():
    print("--- Creating tables ---")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        # 1. Owner and workspace
        owner = users.get_user_by_email(db, DEMO_EMAIL)
        if not owner:
            owner = users.create_user(
                db, email=DEMO_EMAIL, username="owner", password=DEMO_PASSWORD,
                first_name="Demo", last_name="Owner",
            )
            print(f"Owner '{DEMO_EMAIL}' created (password: {DEMO_PASSWORD})")

        org = db.query(Organization).filter(Organization.owner_id == owner.id).first()
        if not org:
            org = organizations.create_workspace(db, owner, "Demo Clothing Store", "Seeded demo workspace")
            print(f"Workspace '{org.name}' created")
        db.commit()

        # 2. Categories
        category_ids = {}
        for name, description in CATEGORIES:
            category = db.query(Category).filter(Category.organization_id == org.id, Category.name == name).first()
            if not category:
                category = Category(organization_id=org.id, name=name, description=description, is_active=True)
                db.add(category)
                db.flush()
            category_ids[name] = category.id
        db.commit()
        print(f"{len(category_ids)} categories ready")

        # 3. Products with opening stock
        created = 0
        for name, sku, category, product_type, unit, price, cost, stock, min_stock in PRODUCTS:
            if db.query(Product.id).filter(
                Product.organization_id == org.id, Product.sku == sku
            ).first():
                continue
            product_in = ProductCreate(
                name=name,
                sku=sku,
                category_id=category_ids[category],
                type=product_type,
                unit=unit,
                base_price=Decimal(price),
                cost_price=Decimal(cost) if cost else None,
                initial_stock=Decimal(stock),
                min_stock=Decimal(min_stock),
                is_tailoring=product_type == ProductType.TAILORING_SERVICE,
            )
            products.create_product(db, org.id, product_in, owner.id)
            created += 1
        db.commit()
        print(f"{created} products created")

        # 4. A customer with shirt measurements
        if not db.query(Customer).filter(Customer.organization_id == org.id).first():
            customer = Customer(
                organization_id=org.id,
                first_name="Rahul",
                last_name="Sharma",
                phone="9876543210",
                city="Mumbai",
                created_by_id=owner.id,
                is_active=True,
            )
            db.add(customer)
            db.flush()
            db.add(CustomerMeasurement(
                customer_id=customer.id,
                name="Shirt",
                measurements={"chest": 40, "waist": 34, "shoulder": 17.5, "sleeve": 25, "length": 29},
                is_active=True,
            ))
            db.commit()
            print("Demo customer created")
    finally:
        db.close()

    print("--- Seed finished ---")


if __name__ == "__main__":
    init_db()
