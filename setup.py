from setuptools import setup, find_packages

setup(
    name="pv-battery-dispatch",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "numpy>=1.20.0",
        "pulp>=2.7.0",  # For the perfect-foresight benchmark LP
        "pyyaml>=5.4",  # For YAML configuration files
        "pandas>=1.3.0",  # For trajectory analysis
        "scipy>=1.7.0",  # For integration checks
    ],
    extras_require={
        'dev': [
            'pytest>=6.0.0',
            'black>=21.5b2',
            'mypy>=0.900',
        ],
    },
    description="Time-stepped simulator for PV + battery energy dispatch policies",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Energy",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    package_data={
        "pvbess": ["py.typed"],
    },
    zip_safe=False,
)
