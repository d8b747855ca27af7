"""Setup configuration for BullyWatch."""

from setuptools import setup, find_packages

setup(
    name="bullywatch",
    version="0.1.0",
    description="Bullying and harassment scoring pipeline for group chats",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "openai>=1.40",
        "jsonschema>=4.0",
        "PyYAML>=6.0",
        "aiosqlite>=0.19",
        "prompt_toolkit>=3.0",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
