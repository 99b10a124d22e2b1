import os
from setuptools import setup

here = os.path.abspath(os.path.dirname(__file__))


def run_setup():
    # Load Version
    with open(os.path.join(here, "VERSION"), "r") as f:
        version = f.read().rstrip()

    # Load Requirements
    with open(os.path.join(here, "requirements.txt")) as f:
        install_requires = [l.strip() for l in f if l.strip()]

    try:
        readme = open(os.path.join(here, "README.md")).read()
    except IOError:
        readme = ""

    setup(
        name="mobtrees",
        author="schufa-innovationlab",
        version=version,
        description="Scikit-Learn compatible implementation of model-based recursive partitioning.",
        long_description=readme,
        long_description_content_type="text/markdown",
        license="Apache License 2.0",
        packages=["mobtrees"],
        include_package_data=True,
        zip_safe=False,
        install_requires=install_requires,
        extras_require={"test": ["pytest"]},
        python_requires=">=3.8",
        classifiers=[
            "Intended Audience :: Science/Research",
            'Intended Audience :: Developers',
            "Programming Language :: Python :: 3",
            "Topic :: Scientific/Engineering",
            "Topic :: Scientific/Engineering :: Artificial Intelligence",
            "Topic :: Scientific/Engineering :: Mathematics",
        ],
    )


if __name__ == "__main__":
    run_setup()
