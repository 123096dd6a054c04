from setuptools import find_packages, setup

setup(name="tarstream",
      version="1.0.0",
      author="Laurent van den Bos",
      author_email="laurentvdbos@outlook.com",
      license="MIT",
      python_requires=">=3.10",
      packages=find_packages(include=['tarstream']),
      extras_require={
            'test': ['pytest']
      },
      entry_points={
            'console_scripts': ['tarstream=tarstream.__main__:main']
      })
