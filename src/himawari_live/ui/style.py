BASE_STYLESHEET = """
QDialog, QMainWindow { background: #0b1220; }
QLabel { color: #e5e7eb; }
QCheckBox { color: #e5e7eb; }
QSpinBox, QDoubleSpinBox {
    background: #0f172a; border: 1px solid #1f2937; color: #e5e7eb; border-radius: 6px; padding: 6px;
}
QPushButton {
    background: #22d3ee; color: #0b1220; border: none; border-radius: 6px; padding: 8px 12px;
    font-weight: 600;
}
QPushButton:disabled { background: #1f2937; color: #9ca3af; }
QStatusBar { color: #9ca3af; }
"""
