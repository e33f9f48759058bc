"""Kelas (classes), enrollment and the ordered materi (lessons) inside them."""
