import argparse
import os
import sys

import pandas as pd

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from carmarket.data.outliers import outlier_summary
from carmarket.data.preprocess import preprocess_listings

RAW = "data/raw/car_listings.csv"
OUT = "data/processed/car_listings_clean.csv"


def main():
    p = argparse.ArgumentParser(description="Clean raw car listings into the analysis table")
    p.add_argument("--input", type=str, default=RAW, help="Path to raw CSV")
    p.add_argument("--output", type=str, default=OUT, help="Where to write the cleaned CSV")
    args = p.parse_args()

    df = pd.read_csv(args.input)
    print(f"✅ Raw loaded: {df.shape[0]} rows")

    df_processed = preprocess_listings(df)
    print(df_processed.info())
    print("\nOut-of-range counts (rows are kept here, each analysis trims its own):")
    print(outlier_summary(df_processed).to_string(index=False))

    os.makedirs(os.path.dirname(args.output), exist_ok=True)
    df_processed.to_csv(args.output, index=False)
    print(f"Processed dataset saved to {args.output} | Shape: {df_processed.shape}")


if __name__ == "__main__":
    main()
