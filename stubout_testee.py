#!/usr/bin/env python
#
# Patch targets for stubout_test.py.
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

SETTINGS = {'mode': 'production', 'retries': 3}

TIMEOUT = 30


def SampleFunction():
  raise Exception('I should never be called!')


def UsesSampleFunction():
  return SampleFunction()


class Service(object):

  endpoint = 'https://example.invalid/api'

  def __init__(self):
    self.session = 'live-session'
    self._timeout = TIMEOUT

  @property
  def timeout(self):
    return self._timeout

  @timeout.setter
  def timeout(self, value):
    self._timeout = value

  def Fetch(self, key):
    return 'live:%s' % key

  @staticmethod
  def Version():
    return 'v1'

  @classmethod
  def Create(cls):
    return cls()


class SubService(Service):
  pass
