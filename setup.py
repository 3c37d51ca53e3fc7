from setuptools import setup, find_packages

setup(
    name='kubestrap',
    version='0.1.0',
    packages=find_packages(include=['kubestrap', 'kubestrap.*']),
    include_package_data=True,
    install_requires=[
        'typer',
        'rich',
        'fastapi',
        'uvicorn',
        'paramiko',
        'pydantic>=2',
        'pyyaml',
        'jsonschema',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'kubestrap=kubestrap.cli:app'
        ]
    },
    description='Bootstrap kubeadm Kubernetes clusters over SSH from an Ansible-style inventory',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
    python_requires='>=3.8',
)
