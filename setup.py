"""
Sync Alarm - Setup Configuration
"""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh if line.strip() and not line.startswith("#")]

setup(
    name="sync-alarm",
    version="1.0.0",
    author="PRO-Ka-Po Team",
    author_email="contact@example.com",
    description="Współdzielona lista alarmów z obecnością urządzeń w czasie rzeczywistym",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["alarm_api", "alarm_api.*", "alarm_client", "alarm_client.*"]),
    py_modules=["main"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Framework :: FastAPI",
        "Topic :: Home Automation",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Natural Language :: Polish",
        "Natural Language :: English",
    ],
    python_requires=">=3.11",
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sync-alarm=main:main",
        ],
    },
)
