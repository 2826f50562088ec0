"""setuptools setup for StudyQuest.

Install for development:
    pip install -e ".[test]"
    python -m studyquest status
"""

from setuptools import find_packages, setup

setup(
    name="studyquest",
    version="0.1.0",
    description="Progression and reward engine for study-habit tracking",
    packages=find_packages(include=["studyquest", "studyquest.*"]),
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.4",
        "SQLAlchemy>=2.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": ["studyquest=studyquest.__main__:main"],
    },
)
