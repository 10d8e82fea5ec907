from setuptools import setup, find_packages

setup(
    name="trendradar",
    version="1.2.0",
    description="Hot-list monitor with keyword scoring and multi-stage news deduplication",
    author="TrendRadar contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"trendradar": ["keywords.txt", "platforms.yaml"]},
    install_requires=[
        "requests>=2.31.0",
        "python-dateutil>=2.8.0",
        "rich>=13.0.0",
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "trendradar=trendradar.cli:main",
        ],
    },
    python_requires=">=3.9",
)
