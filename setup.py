from setuptools import setup, find_packages

setup(
    name="bullet_bond_engine",
    version="0.1.0",
    description="Cash-flow, TCEA/TREA, duration and convexity engine for American (bullet) bonds",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)
