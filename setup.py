"""
Setup configuration for JNI Home Automation shared code.
"""
from setuptools import setup, find_packages
import os

def read_requirements():
    """Read requirements from requirements.txt"""
    if os.path.exists('requirements.txt'):
        with open('requirements.txt', 'r') as f:
            return [line.strip() for line in f if line.strip() and not line.startswith('#')]
    return []

def read_readme():
    """Read README file"""
    if os.path.exists('README.md'):
        with open('README.md', 'r', encoding='utf-8') as f:
            return f.read()
    return "JNI Home Automation shared code - resilient MQTT connection handling"

setup(
    name="jni-home-shared",
    version="2.1.0",
    author="jni",
    author_email="jni@mopore.org",
    description="Shared MQTT connection handling and logging for JNI Home Automation",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    url="https://github.com/mopore/jni-home-automate-shared",
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    install_requires=read_requirements(),
    extras_require={
        'test': [
            'pytest>=7.0',
            'pytest-asyncio>=0.23',
        ],
    },
    entry_points={
        'console_scripts': [
            'jni-shared=jni_home_shared.shared_cli:main',
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: ISC License (ISCL)",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Home Automation",
        "Topic :: System :: Networking",
        "Topic :: Communications",
    ],
    python_requires=">=3.8",
    keywords="mqtt home-automation paho reconnect",
    project_urls={
        "Source": "https://github.com/mopore/jni-home-automate-shared",
    },
)
