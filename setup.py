from setuptools import setup, find_packages

setup(
    name="aws-connect-quickconnect-controller",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "kopf",
        "kubernetes",
        "boto3",
        "flask",
        "pydantic>=2",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    python_requires=">=3.9",
)
