"""
Demo data generator for Stockly.

Provides sample business data for quick demos and for trying out backup
and restore without entering real data.

Usage:
    from stockly.demo import generate_demo_data

    # Fill the default store with a sample jewellery business
    generate_demo_data()

    # Then take a backup
    stockly backup
"""

from stockly.demo.generator import (
    DemoGenerator,
    generate_demo_data,
)

__all__ = [
    "DemoGenerator",
    "generate_demo_data",
]
