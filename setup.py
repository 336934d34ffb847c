import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="fitscodec",
    version="0.1.0",
    author="Chase Million",
    author_email="chase@millionconcepts.com",
    description="FITS file encoder / decoder",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.9',
    install_requires=[
        "multidict",
        "pandas",
        "numpy",
        "python-Levenshtein",
        "dustgoggles",
        "more_itertools",
        "cytoolz",
    ],
    extras_require={
        "tests": ["pytest"],
        "fits": ["astropy"],
    }
)
