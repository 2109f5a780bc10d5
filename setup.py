import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="postfix-exporter",
    version="1.0.0",
    author="postfix-exporter contributors",
    description="Prometheus exporter for Postfix mail server statistics",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords="postfix prometheus exporter metrics mail smtp monitoring",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: System Administrators",
        "Natural Language :: English",
        "Topic :: Communications :: Email :: Mail Transport Agents",
        "Topic :: System :: Monitoring",
        "Operating System :: POSIX :: Linux",
    ],
    package_dir={"": "src"},
    include_package_data = True,
    packages=setuptools.find_packages(where="src"),
    python_requires=">=3.10",
    install_requires=['attrs>=22.2.0', 'toml'],
    extras_require={'test': ['pytest']},
    entry_points={
    'console_scripts': [
        'postfix-exporter = postfix_exporter.cli:main',
    ],
},
)
