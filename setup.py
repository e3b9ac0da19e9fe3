from setuptools import setup, find_packages


def parse_requirements():
    with open('requirements.txt') as file:
        requirements = [line.strip() for line in file.readlines() if line.strip()]
    return requirements


if __name__ == '__main__':
    setup(
        name='fsbrowser',
        version='1.0',
        author='AI Forever',
        package_dir={'': '.'},
        packages=find_packages('.', include=['fsbrowser', 'fsbrowser.*']),
        python_requires='>=3.10',
        install_requires=parse_requirements(),
        extras_require={'test': ['pytest>=7.0', 'pytest-asyncio>=0.21']},
        entry_points={'console_scripts': ['fsbrowser=fsbrowser.cli:run']}
    )
