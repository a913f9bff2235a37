from setuptools import setup, find_packages

setup(
    name="citas-reminders",
    version="0.1.0",
    package_dir={"": "backend"},
    packages=find_packages(where="backend", include=["app", "app.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "psycopg2-binary",
        "python-dotenv",
        "pydantic",
        "pydantic-settings",
        "celery",
        "kombu",
        "requests",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
