"""Setup configuration for plugcord."""

from setuptools import setup, find_packages

setup(
    name="plugcord",
    version="0.1.0",
    description="Per-guild plugin configuration and dependency-ordered loading for Discord bots",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord>=2.6",
        "aiosqlite>=0.20",
        "PyYAML>=6.0",
        "jsonschema>=4.18",
        "prompt_toolkit>=3.0",
        "python-dotenv>=1.0",
        "tzdata",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "plugcord=plugcord.main:main",
        ],
    },
)
