# -*- coding: utf-8 -*-
"""Weekly diet plans: generation, storage and reads."""
