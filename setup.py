from setuptools import setup, find_packages

setup(
    name="alert-order-router",
    version="1.0.0",
    author="Alert Order Router Team",
    description="Per-account position sizing, parallel order dispatch and fill-price TP/SL rebasing",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "pydantic>=2.11.7",
        "PyYAML>=6.0.2",
        "aiohttp>=3.12.15",
        "redis>=5.0.1",
        "dependency-injector>=4.41",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "fakeredis>=2.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "alert-router=alert_router.__main__:main",
        ],
    },
    python_requires=">=3.11",
)
