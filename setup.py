from setuptools import setup, find_packages

setup(
    name="suistream-pipeline",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "httpx>=0.24.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "tenacity>=8.0.0",
        "cryptography>=41.0.0",
        "python-json-logger>=2.0.0",
        "click>=8.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "suistream = suistream_pipeline.cli:cli",
        ],
    },
    python_requires=">=3.8",
    author="SuiStream Team",
    description="Encrypted video packaging and Walrus upload orchestration for SuiStream",
)
