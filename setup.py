# setup.py
from setuptools import find_packages, setup

setup(
    name="estate-geo",
    version="0.0.1",
    packages=find_packages(include=["estate_geo", "estate_geo.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "SQLAlchemy[asyncio]>=2.0",
        "asyncpg>=0.29",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "structlog>=24.1",
        "sentry-sdk>=1.40",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.27",
        ],
    },
)
