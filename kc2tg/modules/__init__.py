"""Générateurs des modules Terraform (un trio main/variables/outputs par fonctionnalité)"""
