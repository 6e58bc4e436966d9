#!/usr/bin/env python3
"""
Generate a small ERP-style sample schema for trying schema_scout offline.

Writes one Parquet file per table (department and employee master data,
inventory, a bill status code table and a sales order header/detail pair)
that `schema-scout scan --source samples --sample_dir samples/` can read
without a database.
"""

import random
from datetime import date, timedelta
from pathlib import Path
from typing import Dict

import pandas as pd

OUTPUT_DIR = Path(__file__).parent

DEPARTMENTS = [
    ("01", "总经办"),
    ("02", "财务部"),
    ("03", "销售部"),
    ("04", "采购部"),
    ("05", "仓储部"),
    ("06", "生产部"),
]

BILL_STATUSES = [(0, "未审核"), (1, "已审核"), (2, "已关闭"), (3, "已作废")]


def generate_departments() -> pd.DataFrame:
    return pd.DataFrame(DEPARTMENTS, columns=["cDepCode", "cDepName"])


def generate_bill_statuses() -> pd.DataFrame:
    """Code table referenced by SO_SOMain.iStatus."""
    return pd.DataFrame(BILL_STATUSES, columns=["code", "name"])


def generate_persons(rng: random.Random, n: int = 40) -> pd.DataFrame:
    persons = []
    for i in range(1, n + 1):
        dep_code = rng.choice(DEPARTMENTS)[0]
        persons.append({
            "cPersonCode": f"P{i:04d}",
            "cPersonName": f"员工{i:02d}",
            "cDepCode": dep_code,
            # Free slot this installation uses for the cost center, which is the department
            "cFree1": dep_code if rng.random() < 0.8 else None,
        })
    return pd.DataFrame(persons)


def generate_inventory(rng: random.Random, n: int = 60) -> pd.DataFrame:
    items = []
    for i in range(1, n + 1):
        items.append({
            "cInvCode": f"INV{i:05d}",
            "cInvName": f"物料{i:03d}",
            "cInvStd": rng.choice(["10x20", "20x40", "A4", "500ml", ""]),
            "iInvSPrice": round(rng.uniform(5, 500), 2),
        })
    return pd.DataFrame(items)


def generate_sales_orders(
    rng: random.Random,
    persons_df: pd.DataFrame,
    n: int = 200,
) -> pd.DataFrame:
    """Sales order headers."""
    orders = []
    sales_people = persons_df["cPersonCode"].tolist()
    start = date(2024, 1, 1)

    for i in range(1, n + 1):
        orders.append({
            "ID": 1000 + i,
            "cSOCode": f"SO{2024000 + i}",
            "dDate": start + timedelta(days=rng.randint(0, 365)),
            "cDepCode": "03",
            "cPersonCode": rng.choice(sales_people),
            "iStatus": rng.choices([0, 1, 2, 3], weights=[0.1, 0.7, 0.15, 0.05])[0],
            "cMaker": rng.choice(["demo", "admin"]),
            "cDefine1": rng.choice(["线上", "门店", None]),
        })
    return pd.DataFrame(orders)


def generate_sales_order_details(
    rng: random.Random,
    orders_df: pd.DataFrame,
    inventory_df: pd.DataFrame,
) -> pd.DataFrame:
    """Sales order lines, one to five per header."""
    lines = []
    inv_codes = inventory_df["cInvCode"].tolist()
    prices = dict(zip(inventory_df["cInvCode"], inventory_df["iInvSPrice"]))
    auto_id = 1

    for order_id in orders_df["ID"]:
        for _ in range(rng.randint(1, 5)):
            inv_code = rng.choice(inv_codes)
            quantity = rng.randint(1, 50)
            lines.append({
                "AutoID": auto_id,
                "ID": order_id,
                "cInvCode": inv_code,
                "iQuantity": quantity,
                "iUnitPrice": prices[inv_code],
                "iMoney": round(prices[inv_code] * quantity, 2),
            })
            auto_id += 1
    return pd.DataFrame(lines)


def write_samples(output_dir: Path = OUTPUT_DIR, seed: int = 42) -> Dict[str, int]:
    """Write every sample table as Parquet; returns table -> row count."""
    rng = random.Random(seed)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    persons_df = generate_persons(rng)
    inventory_df = generate_inventory(rng)
    orders_df = generate_sales_orders(rng, persons_df)
    frames = {
        "Department": generate_departments(),
        "t_billstatus": generate_bill_statuses(),
        "Person": persons_df,
        "Inventory": inventory_df,
        "SO_SOMain": orders_df,
        "SO_SODetails": generate_sales_order_details(rng, orders_df, inventory_df),
    }

    for name, df in frames.items():
        df.to_parquet(output_dir / f"{name}.parquet", index=False)
    return {name: len(df) for name, df in frames.items()}


def main():
    """Generate all sample data files."""
    print("Generating ERP sample data for schema_scout...")
    counts = write_samples()

    print(f"\nGenerated sample files in: {OUTPUT_DIR}")
    print("\nSummary:")
    for name, rows in counts.items():
        print(f"  - {name}: {rows} rows")


if __name__ == "__main__":
    main()
