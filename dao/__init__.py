#!/usr/bin/env python3
"""
Data Access Objects (DAO) package for the conversation intelligence pipeline.
"""

from dao.base_dao import BaseDAO
from dao.message_dao import MessageDAO
from dao.analysis_dao import AnalysisCacheDAO
from dao.message_analysis_dao import MessageAnalysisDAO
from dao.stats_dao import StatsDAO
