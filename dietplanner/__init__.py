# -*- coding: utf-8 -*-
"""Weekly diet planner backend."""
