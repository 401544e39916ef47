'''
TutorApp backend: lesson lifecycle and bi-weekly earnings approval service.
'''
