"""
Common test configuration for all test subdirectories.
Put here only those things that can not be done through command line options and pytest.ini file.
"""
import logging
import os
import sys

import pytest

from bsqp.bspline import bspline as bs

# add tests dir to sys path in order to get access to the 'fixtures' module.
this_source_dir = os.path.dirname(os.path.realpath(__file__))
sys.path.append(this_source_dir)

logging.basicConfig(level=logging.INFO)


@pytest.fixture
def wave_curve():
    """
    Degree 3, 1D curve on [0, 1] with control points 0, 1, 0, 1, 0.
    """
    return bs.Curve(3, 1, (0.0, 1.0), poles=[0.0, 1.0, 0.0, 1.0, 0.0])


@pytest.fixture
def planar_curve():
    """
    Degree 3, 2D curve on [0, 2] with 7 control points, knots at multiples of 0.5.
    """
    poles = [[0., 0.], [1., 2.], [2., -1.], [3., 3.], [4., 0.], [5., 1.], [6., 2.]]
    return bs.Curve(3, 2, (0.0, 2.0), poles=poles)
