from setuptools import setup, find_packages

setup(
    name='keymaster',
    version='0.1.0',
    description='Team, api key and rate limit policy management for a model serving gateway',
    packages=find_packages(include=['keymaster', 'keymaster.*']),
    python_requires='>=3.9',
    install_requires=[
        'kubernetes',
        'fastapi',
        'pydantic>=2',
        'click',
        'uvicorn',
        'python-dotenv',
    ],
    extras_require={
        'dev': [
            'pytest',
            'httpx',
        ],
    },
    entry_points={
        'console_scripts': [
            'keymaster=keymaster.__main__:cli',
        ],
    },
)
