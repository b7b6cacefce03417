from setuptools import setup, find_packages

setup(
    name='zk-email-accounts',
    version='1.0.0',
    description='Ledger accounts controlled by zero-knowledge proofs of email ownership',
    packages=find_packages(exclude=['tests', 'tests.*']),
    install_requires=[
        'fastapi>=0.100.0',
        'uvicorn>=0.23.0',
        'pydantic>=2.0',
        'pydantic-settings>=2.0',
        'sqlalchemy>=2.0',
        'loguru>=0.7.0',
        'httpx>=0.24.0',
        'eth-utils>=2.2.0',
        'eth-hash[pycryptodome]>=0.5.0',
        'eth-account>=0.10.0',
        'PyJWT[crypto]>=2.8.0',
        'cryptography>=41.0.0',
        'click>=8.1.0',
        'rich>=13.0.0'
    ],
    extras_require={
        'tests': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.21.0'
        ]
    },
    entry_points={
        'console_scripts': [
            'zkaccount=zkaccount.cli:cli'
        ]
    },
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12'
    ],
    python_requires='>=3.9',
    keywords='zero-knowledge groth16 oidc ledger accounts'
)
