from setuptools import setup, find_packages

setup(
    name="lanternslam",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    install_requires=[
        "numpy",
        "opencv-python",
        "scipy",
        "matplotlib",
    ],
    extras_require={
        "test": ["pytest"],
    },
    description="RGB-D camera tracking with keyframe loop closure and object-anchored keyframes",
    python_requires=">=3.8",
)
