from setuptools import setup, find_packages

setup(
    name="roam-cli",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "click>=8.1",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "requests>=2.31",
        "urllib3>=2.0",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-mock",
            "black",
            "mypy",
            "ruff",
        ]
    },
    entry_points={
        "console_scripts": [
            "roam-cli=roam_cli:main",
        ],
    },
    python_requires=">=3.10",
)
