#!/usr/bin/env python
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from setuptools import setup

setup(name='understudy',
      version='0.1.0',
      py_modules=['understudy', 'stubout'],
      python_requires='>=3.11',
      extras_require={'test': ['pytest']},
      license='Apache License, Version 2.0',
      description='Recording test doubles and scoped binding substitution',
      long_description='''Understudy provides recording test doubles: proxy
objects that log every call, answer with configurable responses and are
verified after the fact, plus scoped substitution of module members,
attributes and mapping entries with guaranteed restoration.''',
      )
