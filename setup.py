from setuptools import find_packages, setup

setup(
    name="sharepointclient",
    packages=find_packages("src"),
    package_dir={"": "src"},
    version="0.1.0",
    license="MIT",
    long_description="",
    long_description_content_type="text/markdown",
    description="A simple wrapper over the SharePoint REST API",
    keywords=["SharePoint", "REST", "OData", "API Wrapper"],
    python_requires=">=3.9",
    install_requires=["httpx"],
    extras_require={
        "orjson": ["orjson"],
        "test": ["pytest"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
