"""
Electronica Sample Dataset Generator
Writes transactions.csv and master_data.csv in the source-file layout
the dimension loader expects.
"""

import random
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import polars as pl
from faker import Faker

fake = Faker()
random.seed(42)
np.random.seed(42)
Faker.seed(42)

OUTPUT_DIR = Path(__file__).parent.parent / "data"
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


# ==========================================
# MASTER DATA (products, suppliers, stores)
# ==========================================
def generate_master_data(n_products=100, n_suppliers=20, n_stores=10):
    print(f"📊 Generating master data for {n_products:,} products...")

    supplier_ids = np.random.randint(1, n_suppliers + 1, n_products)
    store_ids = np.random.randint(1, n_stores + 1, n_products)
    supplier_names = {i: fake.company() for i in range(1, n_suppliers + 1)}
    store_names = {i: f"Electronica-{fake.city()}" for i in range(1, n_stores + 1)}

    df = pl.DataFrame({
        "productID": list(range(101, 101 + n_products)),
        "productName": [f"{fake.word().title()} {random.choice(['Phone', 'Laptop', 'Monitor', 'Headset', 'Charger'])}" for _ in range(n_products)],
        "productPrice": [f"${p:.2f}" for p in np.round(np.random.uniform(5, 1500, n_products), 2)],
        "supplierID": supplier_ids,
        "supplierName": [supplier_names[int(i)] for i in supplier_ids],
        "storeID": store_ids,
        "storeName": [store_names[int(i)] for i in store_ids],
    })

    df.write_csv(OUTPUT_DIR / "master_data.csv")
    print(f"   ✅ master_data.csv: {n_products:,} rows")
    return df


# ==========================================
# TRANSACTIONS
# ==========================================
def generate_transactions(n=1000, n_customers=400, product_ids=None):
    print(f"📊 Generating {n:,} transactions...")

    base_date = datetime(2019, 1, 1)
    random_days = np.random.randint(0, 365, n)
    random_minutes = np.random.randint(0, 24 * 60, n)
    timestamps = [
        (base_date + timedelta(days=int(d), minutes=int(m))).strftime("%Y-%m-%d %H:%M:%S")
        for d, m in zip(random_days, random_minutes)
    ]
    # ~1% unparseable dates
    for i in np.random.choice(n, max(1, n // 100), replace=False):
        timestamps[int(i)] = "2019-13-45 25:61:00"
    customer_ids = np.random.randint(1, n_customers + 1, n)
    names = {i: fake.name() for i in range(1, n_customers + 1)}

    df = pl.DataFrame({
        "Order ID": list(range(100001, 100001 + n)),
        "Order Date": timestamps,
        "ProductID": np.random.choice(product_ids, n),
        "CustomerID": customer_ids,
        "CustomerName": [names[int(i)] for i in customer_ids],
        "Gender": np.random.choice(["Male", "Female"], n),
        "Quantity Ordered": np.random.randint(1, 5, n),
    })

    df.write_csv(OUTPUT_DIR / "transactions.csv")
    print(f"   ✅ transactions.csv: {n:,} rows")
    return df


# ==========================================
# MAIN
# ==========================================
def main():
    print("=" * 60)
    print("🛒 Electronica Dataset Generator")
    print("=" * 60 + "\n")

    master_df = generate_master_data()
    generate_transactions(product_ids=master_df["productID"].to_list())

    print(f"\n📁 Output: {OUTPUT_DIR}\n")


if __name__ == "__main__":
    main()
