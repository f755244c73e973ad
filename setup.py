from setuptools import find_namespace_packages, setup

setup(
    name="axisfields",
    version="0.1.0",
    packages=find_namespace_packages(include=["axisfields", "axisfields.*"]),
    package_data={"axisfields.core": ["axisfields.yaml"]},
    description="named fields over one axis of numpy arrays, read and written in place",
    # long_description="TODO",
    # long_description_content_type="text/markdown",
    license="MIT",
    keywords="numpy, array views, named indices, parameter packing",
    python_requires=">=3.11",
    install_requires=[
        "numpy >= 2.0",
        "pyyaml >= 6.0",
    ],
    extras_require={
        "gpu": ["cupy"],
        "test": ["pytest >= 7.0"],
    },
)
