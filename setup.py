"""Setup script for the Gador package."""
from setuptools import setup

if __name__ == "__main__":
    setup(
        name="gador",
        version="0.1.0",
        description="State-sync relay, remote control and stage client for the Gador exhibit",
        package_dir={
            "gador_common": "libs/common/src/gador_common",
            "gador_relay": "services/relay/src/gador_relay",
            "gador_client": "services/client/src/gador_client",
        },
        packages=["gador_common", "gador_relay", "gador_client"],
        package_data={
            "": ["*.json", "*.toml", "*.yaml", "*.yml"]
        },
        install_requires=[
            "pydantic>=2.5.0",
            "toml>=0.10.2",
            "python-dotenv>=1.0.0",
            "aiohttp>=3.9.0",
            "rich>=13.0",
        ],
        extras_require={
            'dev': [
                "pytest>=7.4",
                "pytest-asyncio>=0.23",
                "pytest-mock>=3.12",
                "pytest-cov>=4.1",
                "mypy>=1.7",
                "ruff>=0.1.6",
            ],
        },
        entry_points={
            "console_scripts": [
                "gador-relay=gador_relay.__main__:main",
                "gador-client=gador_client.cli:main",
            ],
        },
        python_requires=">=3.11",
    )
