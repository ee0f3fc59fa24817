"""
Setup file for the interview_sessions package.
"""
from setuptools import setup, find_packages

setup(
    name="interview_sessions",
    version="0.1.0",
    packages=find_packages(include=["interview_sessions", "interview_sessions.*"]),
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "pydantic>=2.5.2",
        "python-dotenv>=1.0.0",
        "motor>=3.3.0",
        "pymongo>=4.6.0",
        "langchain-core>=0.1.0",
        "langchain-google-genai>=0.0.5",
        "slowapi>=0.1.9",
        "apscheduler>=3.10.0,<4",
        "click>=8.1.0",
        "tzdata>=2023.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "interview-sessions=interview_sessions.cli:main",
        ],
    },
    python_requires=">=3.9",
    author="AI Interviewer Team",
    author_email="your.email@example.com",
    description="Session lifecycle engine for time-boxed AI technical interviews",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
    ],
)
